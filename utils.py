from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo


class ApiError(Exception):
    _DEFAULT_STATUS = {
        "BAD_REQUEST": 400,
        "AUTH_INVALID": 401,
        "FORBIDDEN": 403,
        "NOT_FOUND": 404,
        "CONFLICT": 409,
        "DB_ERROR": 503,
        "INTERNAL": 500,
    }

    def __init__(self, code: str, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper()
        self.message = str(message or "")
        self.http_status = int(http_status or self._DEFAULT_STATUS.get(self.code, 400))


class PersistenceError(ApiError):
    """A Store read or write failed."""

    def __init__(self, message: str):
        super().__init__("DB_ERROR", message)


def ok(data: Any = None) -> tuple[dict, int]:
    return {"ok": True, "data": data}, 200


def err(code: str, message: str, http_status: int = 400) -> tuple[dict, int]:
    return {"ok": False, "error": {"code": code, "message": message}}, http_status


_ISO_FMT = "%Y-%m-%dT%H:%M:%SZ"


def to_iso_utc(dt: datetime) -> str:
    """Fixed-width UTC text; lexicographic order equals chronological order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_ISO_FMT)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def iso_utc_now() -> str:
    return to_iso_utc(utc_now())


def parse_datetime_maybe(value: Any, *, app_timezone: str = "UTC") -> Optional[datetime]:
    """Parse ISO text (or pass through a datetime); naive values are read in app_timezone."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value or "").strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if dt.tzinfo is None:
        try:
            tz = ZoneInfo(app_timezone)
        except Exception:
            tz = timezone.utc
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(timezone.utc)


def safe_json_loads(raw: Any, default: Any = None) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except Exception:
        return default
