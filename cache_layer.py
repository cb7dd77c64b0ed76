"""
Process-local read-through cache for slow-changing reference data (the
learning catalog). Entries expire after CACHE_TTL_SECONDS; writers call
cache_invalidate_prefix() for immediate effect in this process only.
"""
from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable

from cachetools import TTLCache


_log = logging.getLogger("cache")


def _bounded_env_int(name: str, default: int, lo: int, hi: int) -> int:
    try:
        value = int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        value = default
    return max(lo, min(hi, value))


_entries: TTLCache = TTLCache(
    maxsize=_bounded_env_int("CACHE_MAX_ITEMS", 1000, 16, 100_000),
    ttl=_bounded_env_int("CACHE_TTL_SECONDS", 300, 1, 3600),
)
_guard = threading.RLock()


def make_cache_key(namespace: str, *parts: Any) -> str:
    segments = [str(namespace or "").strip().upper()]
    segments += [str(p).strip() for p in parts if p is not None and str(p).strip()]
    return ":".join(segments)


def cache_get_or_set(key: str, factory: Callable[[], Any]) -> Any:
    with _guard:
        hit = _entries.get(key)
    if hit is not None:
        return hit

    # Loaded outside the lock; two concurrent misses both load, first store wins.
    value = factory()
    with _guard:
        return _entries.setdefault(key, value)


def cache_invalidate_prefix(prefix: str) -> int:
    pfx = str(prefix or "")
    if not pfx:
        return 0
    with _guard:
        doomed = [k for k in list(_entries) if str(k).startswith(pfx)]
        for k in doomed:
            _entries.pop(k, None)
    if doomed:
        _log.debug("cache invalidated prefix=%s entries=%s", pfx, len(doomed))
    return len(doomed)


def cache_clear() -> None:
    with _guard:
        _entries.clear()
