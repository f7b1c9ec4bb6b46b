from __future__ import annotations

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database.models import Base

SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_engine: Engine | None = None


def make_engine(url: str) -> Engine:
    """Create an engine; SQLite connections are shared across the request threadpool."""
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        # In-memory SQLite lives inside one connection; keep exactly one.
        if ":memory:" in url or url in {"sqlite://", "sqlite:///"}:
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


def init_engine(url: str | None = None) -> Engine:
    global _engine
    _engine = make_engine(url or settings.DATABASE_URL)
    SessionLocal.configure(bind=_engine)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        return init_engine()
    return _engine


def init_schema_check(engine: Engine | None = None) -> None:
    """Create missing tables. Existing tables are left untouched."""
    eng = engine or get_engine()
    existing = set(inspect(eng).get_table_names())
    missing = [t for name, t in Base.metadata.tables.items() if name not in existing]
    if missing:
        Base.metadata.create_all(eng, tables=missing)
