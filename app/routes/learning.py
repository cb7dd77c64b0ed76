"""
Learning plan endpoints (L&D portal and the new-hire dashboard).

Authentication happens upstream; these handlers only own the transaction
boundary: one session per request, commit on success, rollback on error.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from flask import Blueprint, current_app, g, jsonify, request

from actions.learning_assignment import add_custom_resource, assign_learning_plan
from actions.learning_progress import expired_summary, get_progress, list_assignments_with_stats, update_progress
from actions.learning_roster import add_roster_member, update_roster_preferences
from db import SessionLocal
from services.notifier import get_notifier
from utils import ApiError, err, ok

learning_bp = Blueprint("learning", __name__)


def _handle(fn: Callable[[Any], Any]):
    db = SessionLocal()
    try:
        out = fn(db)
        db.commit()
        body, status = ok(out)
        return jsonify(body), status
    except ApiError as e:
        db.rollback()
        body, status = err(e.code, e.message, http_status=e.http_status)
        return jsonify(body), status
    except Exception:
        db.rollback()
        logging.getLogger("api").exception("request_id=%s learning %s %s", getattr(g, "request_id", ""), request.method, request.path)
        body, status = err("INTERNAL", "Unexpected error", http_status=500)
        return jsonify(body), status
    finally:
        db.close()


@learning_bp.post("/assignments")
def assign():
    body = request.get_json(silent=True) or {}
    cfg = current_app.config["CFG"]
    return _handle(
        lambda db: assign_learning_plan(
            db,
            cfg=cfg,
            fresher_id=str(body.get("fresherId") or ""),
            department=str(body.get("department") or ""),
            notifier=get_notifier(cfg),
        )
    )


@learning_bp.get("/employees/<fresher_id>/progress")
def progress_get(fresher_id: str):
    return _handle(lambda db: get_progress(db, fresher_id=fresher_id))


@learning_bp.put("/employees/<fresher_id>/progress/<int:item_id>")
def progress_update(fresher_id: str, item_id: int):
    body = request.get_json(silent=True) or {}
    return _handle(
        lambda db: update_progress(
            db,
            fresher_id=fresher_id,
            item_id=item_id,
            patch={"isCompleted": body.get("isCompleted"), "notes": body.get("notes")},
        )
    )


@learning_bp.post("/employees/<fresher_id>/resources")
def resource_add(fresher_id: str):
    body = request.get_json(silent=True) or {}
    return _handle(
        lambda db: add_custom_resource(
            db,
            fresher_id=fresher_id,
            resource={
                "title": body.get("title"),
                "description": body.get("description"),
                "link": body.get("link"),
                "durationMinutes": body.get("durationMinutes"),
            },
        )
    )


@learning_bp.get("/expired")
def expired_list():
    return _handle(lambda db: {"items": expired_summary(db)})


@learning_bp.get("/employees")
def employees_list():
    return _handle(lambda db: {"items": list_assignments_with_stats(db)})


@learning_bp.post("/roster")
def roster_add():
    body = request.get_json(silent=True) or {}
    return _handle(lambda db: add_roster_member(db, member=body))


@learning_bp.put("/roster/<int:member_id>/preferences")
def roster_preferences_update(member_id: int):
    body = request.get_json(silent=True) or {}
    return _handle(
        lambda db: update_roster_preferences(db, member_id=member_id, preferences=body.get("notificationPreferences"))
    )
