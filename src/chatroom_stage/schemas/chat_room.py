"""Chat room-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatroom_stage.db.time import as_utc


class ChatRoomRecord(BaseModel):
    """Room record as seen by clients and carried on the push channel."""

    id: str
    participants: list[str] = Field(..., min_length=2, max_length=2)
    last_message_time: datetime
    unread_count: dict[str, int]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("last_message_time", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)  # type: ignore[return-value]


class ChatRoomResolveRequest(BaseModel):
    """Schema for opening a conversation with another user."""

    other_user_id: str = Field(..., min_length=1, max_length=128, description="Opaque ID of the other user")


class ChatRoomResolveResponse(BaseModel):
    """Result of resolving the canonical room for a user pair."""

    room: ChatRoomRecord
    is_new: bool


class ChatRoomList(BaseModel):
    """Page of rooms a user participates in, newest activity first."""

    chat_rooms: list[ChatRoomRecord]
    total: int
    has_more: bool
