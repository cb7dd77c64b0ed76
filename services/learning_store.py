"""
Persistence for learning assignments and progress items.

Every function takes an open SQLAlchemy session and never commits; the caller
(route handler or job loop) owns the transaction boundary. SQLAlchemy failures
surface as PersistenceError.
"""
from __future__ import annotations

import functools
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy import false, func, or_, select, true
from sqlalchemy.exc import SQLAlchemyError

from models import Fresher, LearningAssignment, LearningProgressItem
from utils import PersistenceError, to_iso_utc


MILESTONE_DAYS = (30, 60, 90)
REMINDER_INTERVAL = timedelta(days=2)


def _persistence(op: str):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except SQLAlchemyError as e:
                raise PersistenceError(f"{op} failed: {e.__class__.__name__}") from e

        return wrapper

    return decorator


@_persistence("get_fresher")
def get_fresher(db, fresher_id: str) -> Optional[Fresher]:
    return db.execute(select(Fresher).where(Fresher.fresher_id == fresher_id)).scalar_one_or_none()


@_persistence("get_assignment")
def get_assignment(db, fresher_id: str, *, for_update: bool = False) -> Optional[LearningAssignment]:
    stmt = select(LearningAssignment).where(LearningAssignment.fresher_id == fresher_id)
    if for_update:
        stmt = stmt.with_for_update(of=LearningAssignment)
    return db.execute(stmt).scalars().first()


@_persistence("create_assignment")
def create_assignment(
    db,
    *,
    fresher_id: str,
    department: str,
    catalog_key: str,
    assigned_at: str,
    duration_days: int,
    deadline: str,
) -> LearningAssignment:
    row = LearningAssignment(
        fresher_id=fresher_id,
        department=department,
        catalog_key=catalog_key,
        assigned_at=assigned_at,
        duration_days=int(duration_days),
        deadline=deadline,
        last_reminder_sent=None,
        deadline_notification_sent=None,
        is_active=True,
        updated_at=assigned_at,
    )
    db.add(row)
    db.flush()
    return row


@_persistence("insert_progress_items")
def insert_progress_items(db, *, fresher_id: str, items: Iterable[dict[str, Any]], now: str) -> list[LearningProgressItem]:
    rows = []
    for it in items:
        row = LearningProgressItem(
            fresher_id=fresher_id,
            item_id=int(it["item_id"]),
            title=str(it.get("title") or ""),
            description=str(it.get("description") or ""),
            link=str(it.get("link") or ""),
            duration_minutes=int(it.get("duration_minutes") or 0),
            is_completed=False,
            completed_at=None,
            notes="",
            is_custom=bool(it.get("is_custom")),
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return rows


@_persistence("list_progress_items")
def list_progress_items(db, fresher_id: str) -> list[LearningProgressItem]:
    return (
        db.execute(
            select(LearningProgressItem)
            .where(LearningProgressItem.fresher_id == fresher_id)
            .order_by(LearningProgressItem.item_id.asc())
        )
        .scalars()
        .all()
    )


@_persistence("get_progress_item")
def get_progress_item(db, fresher_id: str, item_id: int) -> Optional[LearningProgressItem]:
    return (
        db.execute(
            select(LearningProgressItem)
            .where(LearningProgressItem.fresher_id == fresher_id)
            .where(LearningProgressItem.item_id == int(item_id))
        )
        .scalar_one_or_none()
    )


@_persistence("next_item_id")
def next_item_id(db, fresher_id: str) -> int:
    current = db.execute(
        select(func.max(LearningProgressItem.item_id)).where(LearningProgressItem.fresher_id == fresher_id)
    ).scalar_one_or_none()
    return int(current or 0) + 1


@_persistence("update_assignment_deadline")
def update_assignment_deadline(db, fresher_id: str, duration_days: int, deadline: str, *, now: str) -> LearningAssignment:
    row = get_assignment(db, fresher_id)
    if row is None:
        raise PersistenceError(f"update_assignment_deadline failed: no assignment for {fresher_id}")
    row.duration_days = int(duration_days)
    row.deadline = deadline
    row.updated_at = now
    db.flush()
    return row


@_persistence("mark_reminder_sent")
def mark_reminder_sent(db, fresher_id: str, ts: str) -> None:
    row = get_assignment(db, fresher_id)
    if row is None:
        raise PersistenceError(f"mark_reminder_sent failed: no assignment for {fresher_id}")
    row.last_reminder_sent = ts
    row.updated_at = ts
    db.flush()


@_persistence("mark_expiry_notified")
def mark_expiry_notified(db, fresher_id: str, ts: str) -> None:
    row = get_assignment(db, fresher_id)
    if row is None:
        raise PersistenceError(f"mark_expiry_notified failed: no assignment for {fresher_id}")
    row.deadline_notification_sent = ts
    row.updated_at = ts
    db.flush()


@_persistence("update_progress_item")
def update_progress_item(db, *, fresher_id: str, item_id: int, patch: dict[str, Any], now: str) -> Optional[LearningProgressItem]:
    row = get_progress_item(db, fresher_id, item_id)
    if row is None:
        return None
    for key in ("is_completed", "completed_at", "notes"):
        if key in patch:
            setattr(row, key, patch[key])
    row.updated_at = now
    db.flush()
    return row


def _has_incomplete_items():
    return (
        select(LearningProgressItem.item_id)
        .where(LearningProgressItem.fresher_id == LearningAssignment.fresher_id)
        .where(LearningProgressItem.is_completed == false())
        .exists()
    )


@_persistence("list_reminder_candidates")
def list_reminder_candidates(db, now: datetime) -> list[LearningAssignment]:
    now_iso = to_iso_utc(now)
    cutoff = to_iso_utc(now - REMINDER_INTERVAL)
    return (
        db.execute(
            select(LearningAssignment)
            .where(LearningAssignment.deadline.is_not(None))
            .where(LearningAssignment.deadline != "")
            .where(LearningAssignment.deadline > now_iso)
            .where(
                or_(
                    LearningAssignment.last_reminder_sent.is_(None),
                    LearningAssignment.last_reminder_sent <= cutoff,
                )
            )
            .where(_has_incomplete_items())
            .order_by(LearningAssignment.deadline.asc(), LearningAssignment.fresher_id.asc())
        )
        .scalars()
        .all()
    )


@_persistence("list_milestone_candidates")
def list_milestone_candidates(db, now: datetime, days: Iterable[int] = MILESTONE_DAYS) -> list[tuple[LearningAssignment, int]]:
    """Assignments whose whole-day age is exactly one of `days`."""
    out: list[tuple[LearningAssignment, int]] = []
    for day in sorted({int(d) for d in days}):
        # floor((now - assigned_at) / 1 day) == day
        newest = to_iso_utc(now - timedelta(days=day))
        oldest_exclusive = to_iso_utc(now - timedelta(days=day + 1))
        rows = (
            db.execute(
                select(LearningAssignment)
                .where(LearningAssignment.assigned_at > oldest_exclusive)
                .where(LearningAssignment.assigned_at <= newest)
                .order_by(LearningAssignment.assigned_at.asc(), LearningAssignment.fresher_id.asc())
            )
            .scalars()
            .all()
        )
        out.extend((row, day) for row in rows)
    return out


@_persistence("list_expiry_candidates")
def list_expiry_candidates(db, now: datetime) -> list[LearningAssignment]:
    return (
        db.execute(
            select(LearningAssignment)
            .where(LearningAssignment.is_active == true())
            .where(LearningAssignment.deadline.is_not(None))
            .where(LearningAssignment.deadline != "")
            .where(LearningAssignment.deadline < to_iso_utc(now))
            .where(LearningAssignment.deadline_notification_sent.is_(None))
            .order_by(LearningAssignment.deadline.asc(), LearningAssignment.fresher_id.asc())
        )
        .scalars()
        .all()
    )


@_persistence("list_expired_assignments")
def list_expired_assignments(db, now: datetime) -> list[LearningAssignment]:
    return (
        db.execute(
            select(LearningAssignment)
            .where(LearningAssignment.is_active == true())
            .where(LearningAssignment.deadline.is_not(None))
            .where(LearningAssignment.deadline != "")
            .where(LearningAssignment.deadline < to_iso_utc(now))
            .order_by(LearningAssignment.deadline.asc())
        )
        .scalars()
        .all()
    )


@_persistence("list_assignments")
def list_assignments(db) -> list[LearningAssignment]:
    return (
        db.execute(
            select(LearningAssignment).order_by(LearningAssignment.assigned_at.desc(), LearningAssignment.fresher_id.asc())
        )
        .scalars()
        .all()
    )
