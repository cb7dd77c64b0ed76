from __future__ import annotations

from typing import Any

import pytest

from cache_layer import cache_clear
from config import Config
from db import Base, SessionLocal, get_engine, init_engine


class RecordingNotifier:
    """Captures sends; recipients listed in `fail_for` get a failed send."""

    def __init__(self, fail_for: tuple[str, ...] = ()):
        self.fail_for = set(fail_for)
        self.sent: list[dict[str, Any]] = []

    def _record(self, kind: str, to: str, **extra) -> bool:
        delivered = bool(to) and to not in self.fail_for
        self.sent.append({"kind": kind, "to": to, "ok": delivered, **extra})
        return delivered

    def send_assigned(self, employee, module_count):
        return self._record("assigned", employee.get("email"), moduleCount=module_count)

    def send_reminder(self, employee, stats, tier_info):
        return self._record("reminder", employee.get("email"), stats=dict(stats), tier=dict(tier_info))

    def send_milestone_report(self, recipient, stats, breakdown, milestone_day, *, employee=None):
        return self._record("milestone", recipient.get("email"), stats=dict(stats), breakdown=breakdown, day=milestone_day)

    def send_expiry_report(self, recipient, stats, *, employee=None, audience="roster"):
        return self._record(f"expiry_{audience}", recipient.get("email"), stats=dict(stats))

    def recipients(self, kind: str) -> list[str]:
        return [s["to"] for s in self.sent if s["kind"] == kind]


@pytest.fixture()
def cfg(tmp_path) -> Config:
    return Config(
        ENV="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'learning.db'}",
        INTERNAL_CRON_TOKEN="test-cron-token",
        MAIL_MODE="log",
        LD_FALLBACK_EMAIL="",
        REDIS_URL="",
    )


@pytest.fixture()
def app_client(cfg):
    from app import create_app

    cache_clear()
    app = create_app(cfg)
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield app, client
    engine = get_engine()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db(cfg):
    cache_clear()
    engine = init_engine(cfg.DATABASE_URL)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def notifier_factory():
    """RecordingNotifier class, for tests that need failures or a subclass."""
    return RecordingNotifier
