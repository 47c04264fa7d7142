# tests/conftest.py
from __future__ import annotations

import asyncio
import os
from collections.abc import Generator, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "chatroom-stage-test-secret")

from chatroom_stage.api.v1 import dependencies
from chatroom_stage.core.security import create_access_token
from chatroom_stage.db.session import Base
from chatroom_stage.db.session import get_db as app_get_session
from chatroom_stage.main import app as fastapi_app
from chatroom_stage.models import Message
from chatroom_stage.services.attachments import AttachmentStore
from chatroom_stage.services.messages import MessageStore
from chatroom_stage.services.realtime import EventChannel
from chatroom_stage.services.rooms import RoomDirectory

TEST_DB_URL = "sqlite://"

ALICE = "user-alice"
BOB = "user-bob"
CAROL = "user-carol"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def channel() -> EventChannel:
    return EventChannel(queue_size=64)


@pytest.fixture()
def attachments_root(tmp_path: Path) -> Path:
    return tmp_path / "attachments"


@pytest.fixture()
def rooms(db_session: Session, channel: EventChannel) -> RoomDirectory:
    return RoomDirectory(db_session, channel)


@pytest.fixture()
def messages(db_session: Session, channel: EventChannel, rooms: RoomDirectory) -> MessageStore:
    return MessageStore(db_session, channel, rooms)


@pytest.fixture()
def attachments(db_session: Session, attachments_root: Path) -> AttachmentStore:
    return AttachmentStore(db_session, root=attachments_root)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def override_dependencies(
    app: FastAPI,
    session_factory: sessionmaker[Session],
    channel: EventChannel,
    attachments_root: Path,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _get_attachment_store_override(db: dependencies.SessionDep) -> AttachmentStore:
        return AttachmentStore(db, root=attachments_root)

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[dependencies.get_event_channel_dep] = lambda: channel
    app.dependency_overrides[dependencies.get_attachment_store] = _get_attachment_store_override
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI, override_dependencies: None) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def bearer(user_id: str) -> dict[str, str]:
    """Return authorization headers for ``user_id``."""
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture()
def alice_headers() -> dict[str, str]:
    return bearer(ALICE)


@pytest.fixture()
def bob_headers() -> dict[str, str]:
    return bearer(BOB)


def seed_messages(
    db: Session,
    room_id: str,
    sender_id: str,
    count: int,
    start: datetime | None = None,
) -> list[Message]:
    """Insert ``count`` messages one second apart, oldest first."""
    start = start or datetime(2024, 1, 1, tzinfo=UTC)
    rows = [
        Message(
            chat_room_id=room_id,
            sender_id=sender_id,
            text=f"message {index}",
            created_at=start + timedelta(seconds=index),
            updated_at=start + timedelta(seconds=index),
        )
        for index in range(count)
    ]
    db.add_all(rows)
    db.commit()
    return rows


async def settle(rounds: int = 20) -> None:
    """Let background consumer tasks process queued events."""
    for _ in range(rounds):
        await asyncio.sleep(0)
