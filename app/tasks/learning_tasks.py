"""
Celery wrappers around the learning job entry points.

Each task opens its own session and runs one job to completion. Failures while
listing candidates propagate so the task is marked FAILURE; the next daily
tick is the retry. Aborting a task stops the job before its next candidate.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from celery.contrib.abortable import AbortableTask

from actions.learning_jobs import JOBS
from app.tasks import celery_app
from config import get_config
from db import SessionLocal, get_engine, init_engine
from services.notifier import get_notifier
from utils import parse_datetime_maybe


_log = logging.getLogger("scheduler")


def run_learning_job(job: str, *, now: Optional[str] = None, should_stop=None) -> dict[str, Any]:
    fn = JOBS.get(str(job or "").strip().lower())
    if fn is None:
        raise ValueError(f"Unknown learning job: {job}")

    cfg = get_config()
    if get_engine() is None:
        init_engine(cfg.DATABASE_URL)

    now_dt = parse_datetime_maybe(now, app_timezone=cfg.APP_TIMEZONE) if now else None
    db = SessionLocal()
    try:
        return fn(db, cfg=cfg, notifier=get_notifier(cfg), now=now_dt, should_stop=should_stop)
    except Exception:
        db.rollback()
        _log.exception("learning job %s aborted", job)
        raise
    finally:
        db.close()


@celery_app.task(bind=True, base=AbortableTask, name="learning.send_reminders")
def send_reminders_task(self, now: Optional[str] = None):
    return run_learning_job("reminders", now=now, should_stop=self.is_aborted)


@celery_app.task(bind=True, base=AbortableTask, name="learning.send_milestone_reports")
def send_milestone_reports_task(self, now: Optional[str] = None):
    return run_learning_job("milestones", now=now, should_stop=self.is_aborted)


@celery_app.task(bind=True, base=AbortableTask, name="learning.send_expiry_notices")
def send_expiry_notices_task(self, now: Optional[str] = None):
    return run_learning_job("expiry", now=now, should_stop=self.is_aborted)


TASKS = {
    "reminders": send_reminders_task,
    "milestones": send_milestone_reports_task,
    "expiry": send_expiry_notices_task,
}
