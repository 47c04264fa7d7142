# src/chatroom_stage/db/session.py
"""Engine, session factory and declarative base for the chat store."""

from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from chatroom_stage.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base for rooms, participants, messages and attachments."""


# Register the mapped tables on Base.metadata before create_all or autogenerate.
import chatroom_stage.models  # noqa: E402,F401

DATABASE_URL = settings.effective_database_url

# Request handlers and WebSocket sessions may touch a SQLite connection from
# the threadpool as well as the event loop thread.
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session scoped to one request or WebSocket connection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create any missing chat tables on the configured engine."""
    Base.metadata.create_all(bind=engine)
