from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()

# Bound to an engine by init_engine(); importable before that so modules can
# do `from db import SessionLocal` at import time.
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_engine: Engine | None = None


def init_engine(database_url: str, *, create_tables: bool = True) -> Engine:
    global _engine

    url = str(database_url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL is not configured")

    kwargs: dict = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}

    _engine = create_engine(url, **kwargs)
    SessionLocal.configure(bind=_engine)

    if create_tables:
        # Registers the mapped classes on Base.metadata.
        import models  # noqa: F401

        Base.metadata.create_all(_engine)
    return _engine


def get_engine() -> Engine | None:
    return _engine


def ping_db() -> bool:
    if _engine is None:
        return False
    try:
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
