from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from actions.learning_catalog import list_catalog_modules, resolve_catalog_key
from services import learning_store as store
from utils import ApiError, PersistenceError, parse_datetime_maybe, to_iso_utc, utc_now


MINUTES_PER_DAY = 24 * 60
DEADLINE_BUFFER_DAYS = 2

_log = logging.getLogger("learning")


def initial_duration_days(total_minutes: int) -> int:
    """Whole days for the catalog plus the fixed buffer (added even for an empty catalog)."""
    return math.ceil(max(0, int(total_minutes or 0)) / MINUTES_PER_DAY) + DEADLINE_BUFFER_DAYS


def additional_days_for(minutes: int) -> int:
    # Custom resources are budgeted at one day per started hour.
    return math.ceil(max(0, int(minutes or 0)) / 60)


def extend_deadline(old_deadline: datetime, additional_minutes: int) -> datetime:
    """Move a stored deadline forward; relative to the stored value, never rebased to now."""
    return old_deadline + timedelta(days=additional_days_for(additional_minutes))


def employee_view(db, fresher_id: str) -> dict[str, Any]:
    fresher = store.get_fresher(db, fresher_id)
    if fresher is None:
        return {"fresherId": fresher_id, "name": "", "email": "", "department": "", "designation": ""}
    name = f"{fresher.first_name or ''} {fresher.last_name or ''}".strip()
    return {
        "fresherId": fresher.fresher_id,
        "name": name,
        "email": str(fresher.email or "").strip(),
        "department": fresher.department or "",
        "designation": fresher.designation or "",
    }


def assign_learning_plan(
    db,
    *,
    cfg: Any,
    fresher_id: str,
    department: str,
    notifier: Any,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    fid = str(fresher_id or "").strip()
    dept = str(department or "").strip()
    if not fid:
        raise ApiError("BAD_REQUEST", "Missing fresherId")
    if not dept:
        raise ApiError("BAD_REQUEST", "Missing department")

    existing = store.get_assignment(db, fid)
    if existing is not None:
        _log.info("learning plan already assigned fresher=%s catalog=%s", fid, existing.catalog_key)
        return {"ok": True, "created": False, "fresherId": fid, "catalogKey": existing.catalog_key}

    now_dt = now or utc_now()
    catalog_key = resolve_catalog_key(dept)
    modules = list_catalog_modules(db, catalog_key)

    total_minutes = sum(int(m.get("durationMinutes") or 0) for m in modules)
    duration_days = initial_duration_days(total_minutes)
    deadline = now_dt + timedelta(days=duration_days)
    now_iso = to_iso_utc(now_dt)

    try:
        store.create_assignment(
            db,
            fresher_id=fid,
            department=dept,
            catalog_key=catalog_key,
            assigned_at=now_iso,
            duration_days=duration_days,
            deadline=to_iso_utc(deadline),
        )
    except PersistenceError as e:
        if not isinstance(e.__cause__, IntegrityError):
            raise
        # A concurrent assign won the insert; nothing else was written here yet.
        db.rollback()
        existing = store.get_assignment(db, fid)
        if existing is None:
            raise
        _log.info("learning plan assigned concurrently fresher=%s catalog=%s", fid, existing.catalog_key)
        return {"ok": True, "created": False, "fresherId": fid, "catalogKey": existing.catalog_key}
    store.insert_progress_items(
        db,
        fresher_id=fid,
        items=[
            {
                "item_id": idx,
                "title": m["title"],
                "description": m["description"],
                "link": m["link"],
                "duration_minutes": m["durationMinutes"],
            }
            for idx, m in enumerate(modules, start=1)
        ],
        now=now_iso,
    )
    _log.info(
        "learning plan assigned fresher=%s catalog=%s modules=%s minutes=%s days=%s",
        fid,
        catalog_key,
        len(modules),
        total_minutes,
        duration_days,
    )

    # Best effort: the plan stands even if the welcome mail fails.
    notified = False
    try:
        notified = bool(notifier.send_assigned(employee_view(db, fid), len(modules)))
    except Exception:
        _log.exception("assignment notification failed fresher=%s", fid)
    if not notified:
        _log.warning("assignment notification not delivered fresher=%s", fid)

    return {
        "ok": True,
        "created": True,
        "fresherId": fid,
        "catalogKey": catalog_key,
        "moduleCount": len(modules),
        "durationDays": duration_days,
        "deadline": to_iso_utc(deadline),
        "notified": notified,
    }


def _parse_duration_minutes(raw: Any) -> int:
    if raw is None or raw == "":
        return 0
    if isinstance(raw, bool):
        raise ApiError("BAD_REQUEST", "durationMinutes must be a whole number")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ApiError("BAD_REQUEST", "durationMinutes must be a whole number")
        raw = int(raw)
    try:
        minutes = int(raw)
    except (TypeError, ValueError):
        raise ApiError("BAD_REQUEST", "durationMinutes must be a whole number")
    if minutes < 0:
        raise ApiError("BAD_REQUEST", "durationMinutes cannot be negative")
    return minutes


def add_custom_resource(
    db,
    *,
    fresher_id: str,
    resource: dict[str, Any],
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    fid = str(fresher_id or "").strip()
    assignment = store.get_assignment(db, fid, for_update=True) if fid else None
    if assignment is None:
        raise ApiError("NOT_FOUND", "Employee not found in learning system")

    res = resource or {}
    title = str(res.get("title") or "").strip()
    link = str(res.get("link") or "").strip()
    if not title or not link:
        raise ApiError("BAD_REQUEST", "Title and link are required")
    minutes = _parse_duration_minutes(res.get("durationMinutes"))

    now_iso = to_iso_utc(now or utc_now())
    item_id = store.next_item_id(db, fid)
    store.insert_progress_items(
        db,
        fresher_id=fid,
        items=[
            {
                "item_id": item_id,
                "title": title,
                "description": str(res.get("description") or ""),
                "link": link,
                "duration_minutes": minutes,
                "is_custom": True,
            }
        ],
        now=now_iso,
    )

    duration_days = int(assignment.duration_days or 0)
    deadline_iso = assignment.deadline
    if minutes > 0:
        old_deadline = parse_datetime_maybe(assignment.deadline, app_timezone="UTC")
        if old_deadline is None:
            # No stored deadline to extend from; start from assignment time.
            old_deadline = parse_datetime_maybe(assignment.assigned_at, app_timezone="UTC") or (now or utc_now())
        duration_days += additional_days_for(minutes)
        deadline_iso = to_iso_utc(extend_deadline(old_deadline, minutes))
        store.update_assignment_deadline(db, fid, duration_days, deadline_iso, now=now_iso)
        _log.info("learning deadline extended fresher=%s item=%s minutes=%s deadline=%s", fid, item_id, minutes, deadline_iso)

    return {
        "ok": True,
        "fresherId": fid,
        "itemId": item_id,
        "durationDays": duration_days,
        "deadline": deadline_iso,
    }
