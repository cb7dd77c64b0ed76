"""
Trigger and inspect the scheduled learning jobs.

All endpoints require `X-Internal-Token` = INTERNAL_CRON_TOKEN; they are meant
for an external cron or an operator, not for end users.
"""
from __future__ import annotations

import hmac

from celery.contrib.abortable import AbortableAsyncResult
from flask import Blueprint, current_app, jsonify, request

from app.tasks import celery_app
from app.tasks.learning_tasks import TASKS
from utils import ApiError, parse_datetime_maybe, to_iso_utc

jobs_bp = Blueprint("jobs", __name__)


def _require_internal_token() -> None:
    cfg = current_app.config["CFG"]
    expected = str(cfg.INTERNAL_CRON_TOKEN or "").strip()
    provided = str(request.headers.get("X-Internal-Token") or "").strip()
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise ApiError("FORBIDDEN", "Internal token required", http_status=403)


@jobs_bp.post("/learning/<job>")
def enqueue_learning_job(job: str):
    """
    Enqueue one learning job run.

    Request body (optional):
        {
            "now": "2026-01-31T09:00:00Z"   # evaluate the job as of this instant
        }

    Returns:
        { "ok": true, "data": { "job_id": "...", "job": "reminders", "status": "queued" } }
    """
    _require_internal_token()

    task = TASKS.get(str(job or "").strip().lower())
    if task is None:
        raise ApiError("NOT_FOUND", f"Unknown learning job: {job}")

    body = request.get_json(silent=True) or {}
    kwargs = {}
    if body.get("now"):
        cfg = current_app.config["CFG"]
        now_dt = parse_datetime_maybe(body.get("now"), app_timezone=cfg.APP_TIMEZONE)
        if now_dt is None:
            raise ApiError("BAD_REQUEST", "Invalid now")
        kwargs["now"] = to_iso_utc(now_dt)

    result = task.apply_async(kwargs=kwargs)

    return jsonify({
        "ok": True,
        "data": {"job_id": result.id, "job": job, "status": "queued"},
    }), 202


@jobs_bp.get("/<job_id>")
def get_job_status(job_id: str):
    """
    Status of a queued job run.

    Returns:
        {
            "ok": true,
            "data": {
                "job_id": "...",
                "status": "PENDING|STARTED|SUCCESS|FAILURE|ABORTED",
                "result": {...},      # job summary once completed
                "error": "..."        # if failed
            }
        }
    """
    _require_internal_token()

    task = celery_app.AsyncResult(job_id)
    data = {"job_id": job_id, "status": task.state}

    if task.state == "PENDING":
        data["message"] = "Job is queued or unknown"
    elif task.state == "SUCCESS":
        data["result"] = task.result
    elif task.state == "FAILURE":
        data["error"] = str(task.info) if task.info else "Unknown error"
    elif task.state in {"ABORTED", "REVOKED"}:
        data["message"] = "Job was cancelled"

    return jsonify({"ok": True, "data": data})


@jobs_bp.delete("/<job_id>")
def cancel_job(job_id: str):
    """
    Ask a running job to stop before its next candidate.

    Sends currently in flight are never interrupted.
    """
    _require_internal_token()

    AbortableAsyncResult(job_id, app=celery_app).abort()
    celery_app.control.revoke(job_id)

    return jsonify({
        "ok": True,
        "data": {"job_id": job_id, "status": "aborting"},
    })
