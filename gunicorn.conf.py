import os


def _int_setting(name: str, default: int, floor: int) -> int:
    raw = str(os.getenv(name, "") or "").strip()
    try:
        return max(floor, int(raw)) if raw else default
    except ValueError:
        return default


bind = os.getenv("GUNICORN_BIND", "").strip() or f"0.0.0.0:{_int_setting('PORT', 8000, 1)}"

# Request handlers are short DB round trips plus at most one mail relay call.
# The notification jobs run in the Celery worker, never in these processes.
worker_class = "gthread"
workers = _int_setting("WEB_CONCURRENCY", 2, 1)
threads = _int_setting("PYTHON_THREADS", 4, 1)
timeout = _int_setting("GUNICORN_TIMEOUT", 30, 10)
graceful_timeout = _int_setting("GUNICORN_GRACEFUL_TIMEOUT", 20, 5)

accesslog = "-"
errorlog = "-"
loglevel = (os.getenv("GUNICORN_LOG_LEVEL", "") or os.getenv("LOG_LEVEL", "info")).strip().lower()

# Recycle workers so the process-local catalog cache cannot grow stale forever.
max_requests = _int_setting("GUNICORN_MAX_REQUESTS", 2000, 0)
max_requests_jitter = _int_setting("GUNICORN_MAX_REQUESTS_JITTER", 100, 0)


def post_fork(server, worker):
    # Pooled connections must not be shared across forked workers.
    from db import get_engine

    engine = get_engine()
    if engine is not None:
        engine.dispose(close=False)
