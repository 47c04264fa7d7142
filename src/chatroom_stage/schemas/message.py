"""Message-related Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatroom_stage.db.time import as_utc

PageAnchor = Literal["oldest", "newest"]


class MessageRecord(BaseModel):
    """Message as returned by the API and carried on the push channel."""

    id: str
    chat_room_id: str
    sender_id: str
    text: str = ""
    attachment_id: str | None = None
    is_read: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)  # type: ignore[return-value]


class MessagePage(BaseModel):
    """One page of room history in ascending ``created_at`` order."""

    messages: list[MessageRecord]
    total: int
    has_more: bool


class MessageSearchResult(BaseModel):
    """Messages matching a search term, newest first."""

    messages: list[MessageRecord]


class MessageLookup(BaseModel):
    """Optional single message, e.g. the last message of a room."""

    message: MessageRecord | None = None


class AttachmentRecord(BaseModel):
    """Metadata for an uploaded attachment."""

    id: str
    owner_id: str | None = None
    filename: str | None = None
    content_type: str
    size_bytes: int = Field(..., ge=0)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)  # type: ignore[return-value]
