from __future__ import annotations

from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from cache_layer import cache_get_or_set, cache_invalidate_prefix, make_cache_key
from models import LearningCatalogModule
from utils import PersistenceError


DEFAULT_CATALOG_KEY = "other"


def _contains_any(*fragments: str) -> Callable[[str], bool]:
    frags = tuple(f.lower() for f in fragments)
    return lambda dept: any(f in dept for f in frags)


# Evaluated top-down; first match wins. Fragments are plain substrings, so
# "hr" also claims names such as "Threat Intel" or "Three Sixty Sales".
CATALOG_RULES: list[tuple[Callable[[str], bool], str]] = [
    (_contains_any("data", "analytics"), "data_analytics"),
    (_contains_any("application", "development"), "app_dev"),
    (_contains_any("hr", "human resource"), "hr"),
]


def resolve_catalog_key(department: str) -> str:
    dept = str(department or "").strip().lower()
    if not dept:
        return DEFAULT_CATALOG_KEY
    for predicate, key in CATALOG_RULES:
        if predicate(dept):
            return key
    return DEFAULT_CATALOG_KEY


def _serialize_module(row: LearningCatalogModule) -> dict[str, Any]:
    return {
        "id": row.id,
        "title": row.title or "",
        "description": row.description or "",
        "link": row.link or "",
        "durationMinutes": int(row.duration_minutes or 0),
    }


def list_catalog_modules(db, catalog_key: str) -> list[dict[str, Any]]:
    key = str(catalog_key or DEFAULT_CATALOG_KEY).strip()

    def _load() -> list[dict[str, Any]]:
        try:
            rows = (
                db.execute(
                    select(LearningCatalogModule)
                    .where(LearningCatalogModule.catalog_key == key)
                    .order_by(LearningCatalogModule.sort_order.asc(), LearningCatalogModule.id.asc())
                )
                .scalars()
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError("list_catalog_modules failed") from e
        return [_serialize_module(r) for r in rows]

    # Callers get their own list; the cached one stays untouched.
    return list(cache_get_or_set(make_cache_key("LEARNING_CATALOG", key), _load))


def invalidate_catalog_cache() -> int:
    return cache_invalidate_prefix(make_cache_key("LEARNING_CATALOG"))
