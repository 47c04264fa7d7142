# src/chatroom_stage/db/time.py
"""UTC timestamp helpers shared by models, schemas and the event channel."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps, as SQLite returns them.

    Aware values are converted to UTC so records from different backends
    sort and compare consistently.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
