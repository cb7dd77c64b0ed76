from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_csv(name: str, default: str = "") -> list[str]:
    raw = _env_str(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class Config:
    ENV: str = "development"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite:///./onboarding.db"
    APP_TIMEZONE: str = "Asia/Kolkata"

    CORS_ORIGINS: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    CORS_ALLOW_CREDENTIALS: bool = True

    # Shared secret for scheduler-triggered job endpoints.
    INTERNAL_CRON_TOKEN: str = ""

    # log | webhook
    MAIL_MODE: str = "log"
    MAIL_WEBHOOK_URL: str = ""
    MAIL_FROM: str = "learning@onboarding.local"
    MAIL_TIMEOUT_SECONDS: int = 15
    FRONTEND_URL: str = "http://localhost:5173"
    # Used for expiry reports when nobody on the roster has opted in.
    LD_FALLBACK_EMAIL: str = ""

    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = ""
    LEARNING_JOBS_HOUR: int = 9
    LEARNING_JOBS_MINUTE: int = 0


def get_config() -> Config:
    hour = _env_int("LEARNING_JOBS_HOUR", 9)
    minute = _env_int("LEARNING_JOBS_MINUTE", 0)
    return Config(
        ENV=_env_str("ENV", "development"),
        APP_VERSION=_env_str("APP_VERSION", "0.1.0"),
        LOG_LEVEL=_env_str("LOG_LEVEL", "INFO").upper(),
        DATABASE_URL=_env_str("DATABASE_URL", "sqlite:///./onboarding.db"),
        APP_TIMEZONE=_env_str("APP_TIMEZONE", "Asia/Kolkata"),
        CORS_ORIGINS=_env_csv("CORS_ORIGINS", "http://localhost:5173"),
        CORS_ALLOW_CREDENTIALS=_env_bool("CORS_ALLOW_CREDENTIALS", True),
        INTERNAL_CRON_TOKEN=_env_str("INTERNAL_CRON_TOKEN", ""),
        MAIL_MODE=_env_str("MAIL_MODE", "log").lower(),
        MAIL_WEBHOOK_URL=_env_str("MAIL_WEBHOOK_URL", ""),
        MAIL_FROM=_env_str("MAIL_FROM", "learning@onboarding.local"),
        MAIL_TIMEOUT_SECONDS=max(1, _env_int("MAIL_TIMEOUT_SECONDS", 15)),
        FRONTEND_URL=_env_str("FRONTEND_URL", "http://localhost:5173").rstrip("/"),
        LD_FALLBACK_EMAIL=_env_str("LD_FALLBACK_EMAIL", ""),
        REDIS_URL=_env_str("REDIS_URL", "redis://localhost:6379/0"),
        CELERY_RESULT_BACKEND=_env_str("CELERY_RESULT_BACKEND", ""),
        LEARNING_JOBS_HOUR=max(0, min(23, hour)),
        LEARNING_JOBS_MINUTE=max(0, min(59, minute)),
    )
