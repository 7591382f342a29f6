"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
for path in (ROOT_DIR, ROOT_DIR / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("MEDIA_ROOT", str(Path(tempfile.gettempdir()) / "parley-test-media"))

from app.core.errors import UploadError
from app.core.security import create_access_token
from app.core.storage import UploadResult, classify_media, get_media_store, media_public_id
from app.database import bind_session_factory, get_db
from app.main import app
from app.models import Base, User
from parley.realtime import room_registry


class RecordingMediaStore:
    """In-memory media store that remembers every public id it was given."""

    def __init__(self) -> None:
        self.uploads: list[str] = []
        self.fail = False

    async def upload(
        self, data: bytes, mime_type: str, kind: str, owner_id: int, object_id: str
    ) -> UploadResult:
        media_type = classify_media(mime_type, len(data))
        if self.fail:
            raise UploadError("Error uploading media")
        public_id = media_public_id(kind, owner_id, object_id)
        self.uploads.append(public_id)
        return UploadResult(url=f"https://media.test/{public_id}", media_type=media_type)


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def media_store() -> RecordingMediaStore:
    return RecordingMediaStore()


@pytest.fixture()
def make_user(session_factory) -> Callable[..., User]:
    """Create and persist a user, returning a detached instance."""

    counter = {"value": 0}

    def factory(login: str | None = None, **fields) -> User:
        counter["value"] += 1
        login = login or f"user{counter['value']}"
        with session_factory() as session:
            user = User(login=login, email=fields.pop("email", f"{login}@example.com"), **fields)
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
        return user

    return factory


@pytest.fixture()
def token_for() -> Callable[[User], str]:
    def factory(user: User) -> str:
        return create_access_token({"sub": str(user.id)})

    return factory


@pytest.fixture()
def auth_headers(token_for) -> Callable[[User], dict[str, str]]:
    return lambda user: {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture()
def client(session_factory, media_store) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database and media store overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_media_store] = lambda: media_store
    bind_session_factory(session_factory)
    with TestClient(app) as test_client:
        yield test_client
    bind_session_factory(None)
    app.dependency_overrides.clear()


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_rooms() -> Iterator[None]:
    yield
    room_registry._rooms.clear()
    room_registry._memberships.clear()
    room_registry._sockets_by_user.clear()
    room_registry._online.clear()
