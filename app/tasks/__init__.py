"""
Celery configuration and beat schedule for the learning jobs.

Usage:
    celery -A app.tasks.celery_app worker --loglevel=INFO
    celery -A app.tasks.celery_app beat --loglevel=INFO   # exactly one instance
"""
from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from config import get_config


def make_celery() -> Celery:
    """
    Celery app for the learning notification jobs.

    Broker and result backend come from REDIS_URL (CELERY_RESULT_BACKEND
    overrides the backend). Beat fires all three jobs daily at
    LEARNING_JOBS_HOUR:LEARNING_JOBS_MINUTE in APP_TIMEZONE.
    """
    cfg = get_config()
    result_backend = cfg.CELERY_RESULT_BACKEND or cfg.REDIS_URL

    app = Celery(
        "onboarding_learning",
        broker=cfg.REDIS_URL,
        backend=result_backend,
        include=["app.tasks.learning_tasks"],
    )

    daily = crontab(hour=cfg.LEARNING_JOBS_HOUR, minute=cfg.LEARNING_JOBS_MINUTE)

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=cfg.APP_TIMEZONE,
        enable_utc=True,

        result_expires=86400,

        # Jobs are idempotent per tick; a lost worker re-runs the tick.
        task_acks_late=True,
        task_reject_on_worker_lost=True,

        worker_prefetch_multiplier=1,
        worker_concurrency=int(os.getenv("CELERY_CONCURRENCY", "2")),

        # Milestones match exact day offsets, so every job runs once per day.
        beat_schedule={
            "learning-reminders-daily": {"task": "learning.send_reminders", "schedule": daily},
            "learning-milestones-daily": {"task": "learning.send_milestone_reports", "schedule": daily},
            "learning-expiry-daily": {"task": "learning.send_expiry_notices", "schedule": daily},
        },
    )

    return app


celery_app = make_celery()
