from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from models import RosterMember
from services import learning_roster as roster
from utils import ApiError, safe_json_loads, to_iso_utc, utc_now


DEFAULT_ROLE = "L&D Coordinator"

# Categories a member may toggle; anything absent counts as opted in.
KNOWN_CATEGORIES = (
    roster.CATEGORY_NEW_EMPLOYEE,
    roster.CATEGORY_PROGRESS_REPORTS,
    roster.CATEGORY_DEADLINE,
)

_log = logging.getLogger("learning")


def serialize_member(row: RosterMember) -> dict[str, Any]:
    prefs = safe_json_loads(row.notification_preferences, default=None)
    return {
        "id": row.id,
        "email": row.email or "",
        "name": f"{row.first_name or ''} {row.last_name or ''}".strip(),
        "role": row.role or "",
        "isActive": bool(row.is_active),
        "notificationPreferences": prefs if isinstance(prefs, dict) else {},
    }


def _clean_preferences(raw: Any) -> dict[str, bool]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ApiError("BAD_REQUEST", "notificationPreferences must be an object")
    out: dict[str, bool] = {}
    for key, value in raw.items():
        if key not in KNOWN_CATEGORIES:
            raise ApiError("BAD_REQUEST", f"Unknown notification category: {key}")
        if not isinstance(value, bool):
            raise ApiError("BAD_REQUEST", f"{key} must be true or false")
        out[key] = value
    return out


def add_roster_member(db, *, member: dict[str, Any], now: Optional[datetime] = None) -> dict[str, Any]:
    data = member or {}
    email = str(data.get("email") or "").strip().lower()
    if not email or "@" not in email:
        raise ApiError("BAD_REQUEST", "A valid email is required")
    preferences = _clean_preferences(data.get("notificationPreferences"))

    if roster.get_member_by_email(db, email) is not None:
        raise ApiError("CONFLICT", "L&D member with this email already exists")

    row = roster.insert_member(
        db,
        email=email,
        first_name=str(data.get("firstName") or "").strip(),
        last_name=str(data.get("lastName") or "").strip(),
        role=str(data.get("role") or "").strip() or DEFAULT_ROLE,
        preferences=preferences,
        now=to_iso_utc(now or utc_now()),
    )
    _log.info("roster member added id=%s email=%s", row.id, email)
    return serialize_member(row)


def update_roster_preferences(
    db,
    *,
    member_id: int,
    preferences: Any,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Replace a member's preferences; categories left out fall back to opted in."""
    if preferences is None:
        raise ApiError("BAD_REQUEST", "notificationPreferences is required")
    cleaned = _clean_preferences(preferences)
    row = roster.get_member(db, member_id)
    if row is None:
        raise ApiError("NOT_FOUND", "L&D member not found")

    roster.set_member_preferences(db, row, cleaned, now=to_iso_utc(now or utc_now()))
    _log.info("roster preferences updated id=%s prefs=%s", row.id, cleaned)
    return serialize_member(row)
