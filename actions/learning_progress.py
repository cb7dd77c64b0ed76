from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Iterable, Optional

from actions.learning_assignment import employee_view
from models import LearningAssignment, LearningProgressItem
from services import learning_store as store
from utils import ApiError, parse_datetime_maybe, to_iso_utc, utc_now


SECONDS_PER_DAY = 86400


def progress_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    # Half-up rounding in integer arithmetic (12.5 -> 13).
    return (completed * 200 + total) // (2 * total)


def days_remaining(deadline: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days left, rounded up; negative once the deadline has passed."""
    if deadline is None:
        return None
    return math.ceil((deadline - now).total_seconds() / SECONDS_PER_DAY)


def compute_stats(items: Iterable[LearningProgressItem], *, deadline: Any, now: datetime) -> dict[str, Any]:
    rows = list(items)
    total = len(rows)
    completed = sum(1 for r in rows if r.is_completed)
    deadline_dt = parse_datetime_maybe(deadline, app_timezone="UTC")
    return {
        "completedCount": completed,
        "totalCount": total,
        "progressPercentage": progress_percentage(completed, total),
        "daysRemaining": days_remaining(deadline_dt, now),
    }


def serialize_item(row: LearningProgressItem) -> dict[str, Any]:
    return {
        "id": row.item_id,
        "title": row.title or "",
        "description": row.description or "",
        "link": row.link or "",
        "durationMinutes": int(row.duration_minutes or 0),
        "isCompleted": bool(row.is_completed),
        "completedAt": row.completed_at or None,
        "notes": row.notes or "",
        "isCustom": bool(row.is_custom),
    }


def serialize_assignment(row: LearningAssignment) -> dict[str, Any]:
    return {
        "fresherId": row.fresher_id,
        "department": row.department or "",
        "catalogKey": row.catalog_key or "",
        "assignedAt": row.assigned_at or "",
        "durationDays": int(row.duration_days or 0),
        "deadline": row.deadline or None,
        "lastReminderSent": row.last_reminder_sent or None,
        "deadlineNotificationSent": row.deadline_notification_sent or None,
        "isActive": bool(row.is_active),
    }


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    raw = str(value or "").strip().lower()
    if raw in {"1", "true", "yes", "y"}:
        return True
    if raw in {"0", "false", "no", "n", ""}:
        return False
    raise ApiError("BAD_REQUEST", "isCompleted must be a boolean")


def update_progress(
    db,
    *,
    fresher_id: str,
    item_id: Any,
    patch: dict[str, Any],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    fid = str(fresher_id or "").strip()
    try:
        iid = int(item_id)
    except (TypeError, ValueError):
        raise ApiError("BAD_REQUEST", "Invalid progress item id")

    data = patch or {}
    changes: dict[str, Any] = {}
    now_iso = to_iso_utc(now or utc_now())
    if data.get("isCompleted") is not None:
        done = _coerce_bool(data.get("isCompleted"))
        changes["is_completed"] = done
        if done:
            changes["completed_at"] = now_iso
        # Un-completing keeps the previous completed_at.
    if data.get("notes") is not None:
        changes["notes"] = str(data.get("notes"))
    if not changes:
        raise ApiError("BAD_REQUEST", "Nothing to update")

    if store.get_assignment(db, fid) is None:
        raise ApiError("NOT_FOUND", "Employee not found in learning system")

    row = store.update_progress_item(db, fresher_id=fid, item_id=iid, patch=changes, now=now_iso)
    if row is None:
        raise ApiError("NOT_FOUND", "Progress item not found")
    return {"ok": True, "item": serialize_item(row)}


def get_progress(db, *, fresher_id: str, now: Optional[datetime] = None) -> dict[str, Any]:
    fid = str(fresher_id or "").strip()
    assignment = store.get_assignment(db, fid) if fid else None
    if assignment is None:
        raise ApiError("NOT_FOUND", "Employee not found in learning system")

    items = store.list_progress_items(db, fid)
    return {
        "employee": employee_view(db, fid),
        "assignment": serialize_assignment(assignment),
        "items": [serialize_item(r) for r in items],
        "stats": compute_stats(items, deadline=assignment.deadline, now=now or utc_now()),
    }


def expired_summary(db, *, now: Optional[datetime] = None) -> list[dict[str, Any]]:
    now_dt = now or utc_now()
    out = []
    for assignment in store.list_expired_assignments(db, now_dt):
        stats = compute_stats(store.list_progress_items(db, assignment.fresher_id), deadline=assignment.deadline, now=now_dt)
        deadline_dt = parse_datetime_maybe(assignment.deadline, app_timezone="UTC")
        out.append(
            {
                "employee": employee_view(db, assignment.fresher_id),
                "assignment": serialize_assignment(assignment),
                "stats": stats,
                "daysOverdue": (now_dt - deadline_dt).days if deadline_dt else None,
            }
        )
    return out


def list_assignments_with_stats(db, *, now: Optional[datetime] = None) -> list[dict[str, Any]]:
    """Every employee with a learning plan, newest assignment first."""
    now_dt = now or utc_now()
    out = []
    for assignment in store.list_assignments(db):
        items = store.list_progress_items(db, assignment.fresher_id)
        out.append(
            {
                "employee": employee_view(db, assignment.fresher_id),
                "assignment": serialize_assignment(assignment),
                "stats": compute_stats(items, deadline=assignment.deadline, now=now_dt),
            }
        )
    return out
