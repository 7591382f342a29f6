from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings

settings = get_settings()

_pool_options = (
    {}
    if settings.database_url.startswith("sqlite")
    else {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}
)

engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    **_pool_options,
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

_active_factory: sessionmaker[Session] = SessionLocal


def bind_session_factory(factory: sessionmaker[Session] | None) -> None:
    """Point request and socket sessions at ``factory``; ``None`` restores the default."""

    global _active_factory
    _active_factory = factory if factory is not None else SessionLocal


def get_db() -> Iterator[Session]:
    db = _active_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Short-lived session for a single websocket event.

    Socket handlers open one of these per inbound frame instead of holding a
    connection for the lifetime of the socket.
    """
    db = _active_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
