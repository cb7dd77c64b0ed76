from __future__ import annotations

import json
import logging

from sqlalchemy import select, true
from sqlalchemy.exc import SQLAlchemyError

from models import RosterMember
from utils import PersistenceError, safe_json_loads


CATEGORY_NEW_EMPLOYEE = "new_employee_notifications"
CATEGORY_PROGRESS_REPORTS = "progress_reports"
CATEGORY_DEADLINE = "deadline_notifications"

_log = logging.getLogger("learning")


def wants_category(raw_preferences: str, category: str) -> bool:
    """Opted in unless the category is explicitly false; unreadable JSON counts as opted in."""
    prefs = safe_json_loads(raw_preferences, default=None)
    if not isinstance(prefs, dict):
        return True
    return prefs.get(category) is not False


def list_opted_in_members(db, category: str) -> list[dict[str, str]]:
    try:
        rows = (
            db.execute(
                select(RosterMember)
                .where(RosterMember.is_active == true())
                .order_by(RosterMember.first_name.asc(), RosterMember.last_name.asc(), RosterMember.id.asc())
            )
            .scalars()
            .all()
        )
    except SQLAlchemyError as e:
        raise PersistenceError("list_opted_in_members failed") from e

    out = []
    for m in rows:
        if not str(m.email or "").strip():
            continue
        if not wants_category(m.notification_preferences, category):
            continue
        name = f"{m.first_name or ''} {m.last_name or ''}".strip() or str(m.email)
        out.append({"email": str(m.email).strip(), "name": name})

    _log.debug("roster category=%s recipients=%s", category, len(out))
    return out


def get_member(db, member_id: int) -> RosterMember | None:
    try:
        return db.execute(select(RosterMember).where(RosterMember.id == int(member_id))).scalar_one_or_none()
    except SQLAlchemyError as e:
        raise PersistenceError("get_member failed") from e


def get_member_by_email(db, email: str) -> RosterMember | None:
    try:
        return db.execute(select(RosterMember).where(RosterMember.email == email)).scalar_one_or_none()
    except SQLAlchemyError as e:
        raise PersistenceError("get_member_by_email failed") from e


def insert_member(
    db,
    *,
    email: str,
    first_name: str,
    last_name: str,
    role: str,
    preferences: dict[str, bool],
    now: str,
) -> RosterMember:
    row = RosterMember(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=True,
        notification_preferences=json.dumps(preferences, sort_keys=True),
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(row)
        db.flush()
    except SQLAlchemyError as e:
        raise PersistenceError("insert_member failed") from e
    return row


def set_member_preferences(db, row: RosterMember, preferences: dict[str, bool], *, now: str) -> RosterMember:
    row.notification_preferences = json.dumps(preferences, sort_keys=True)
    row.updated_at = now
    try:
        db.flush()
    except SQLAlchemyError as e:
        raise PersistenceError("set_member_preferences failed") from e
    return row
