from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify

from db import ping_db
from utils import iso_utc_now

core_bp = Blueprint("core", __name__)


def _ping_broker() -> bool:
    """Celery broker reachable; an unset REDIS_URL counts as healthy (no queued jobs)."""
    url = str(current_app.config["CFG"].REDIS_URL or "").strip()
    if not url:
        return True
    try:
        import redis

        return bool(redis.from_url(url, socket_connect_timeout=2).ping())
    except Exception:
        return False


def _meta() -> dict[str, Any]:
    cfg = current_app.config["CFG"]
    return {"version": cfg.APP_VERSION, "env": cfg.ENV, "time": iso_utc_now()}


@core_bp.get("/health")
def health():
    """Process is up; touches nothing external."""
    return jsonify({"status": "ok", **_meta()})


@core_bp.get("/ready")
def ready():
    """Database and job broker reachable; 503 otherwise."""
    checks = {"db": ping_db(), "broker": _ping_broker()}
    healthy = all(checks.values())
    body = {
        "status": "ok" if healthy else "degraded",
        "checks": {name: "ok" if passed else "error" for name, passed in checks.items()},
        **_meta(),
    }
    return jsonify(body), 200 if healthy else 503


@core_bp.get("/version")
def version():
    return jsonify(_meta())
