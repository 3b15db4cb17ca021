from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Settings are read at import time: point everything at throwaway locations first.
_TMP = Path(tempfile.mkdtemp(prefix="eventhub-tests-"))
os.environ.setdefault("ENV", "local")
os.environ.setdefault("AUTH_MODE", "dev")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret_32_chars_minimum")
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{_TMP / 'eventhub.db'}")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("STORAGE_ROOT", str(_TMP / "media"))
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from eventhub.db import SessionLocal, create_all  # noqa: E402
from eventhub.main import app  # noqa: E402
from eventhub.models import Base, User  # noqa: E402
from eventhub.realtime import Broadcaster, ChannelRegistry  # noqa: E402
from eventhub.storage.local import LocalStorageAdapter  # noqa: E402

create_all()


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_db():
    # Ensure a clean slate for each test
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture
def storage(tmp_path) -> LocalStorageAdapter:
    return LocalStorageAdapter(tmp_path / "media", url_prefix="/media")


@pytest.fixture
def registry() -> ChannelRegistry:
    return ChannelRegistry()


@pytest.fixture
def broadcaster(registry) -> Broadcaster:
    return Broadcaster(registry)


@pytest.fixture
def loop():
    event_loop = asyncio.new_event_loop()
    yield event_loop
    event_loop.close()


@pytest.fixture
def make_user(db_session):
    def _make_user(email: str, name: str | None = None) -> User:
        user = User(email=email, name=name or email.split("@", 1)[0])
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user
