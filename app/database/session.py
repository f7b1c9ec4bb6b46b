from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy.orm import Session

from app.database.engine import SessionLocal


@contextmanager
def session_scope(factory: Callable[[], Session] | None = None) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
