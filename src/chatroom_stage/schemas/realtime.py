"""WebSocket envelope and conversation view schemas."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from .chat_room import ChatRoomRecord
from .message import MessageRecord

SessionStatusName = Literal["idle", "loading", "ready", "loading_more", "closed"]


class WsInbound(BaseModel):
    """Client → Server intent."""

    type: str  # send | delete | load_more | reload | dismiss_error | ping
    data: dict[str, Any] = Field(default_factory=dict)


class WsOutbound(BaseModel):
    """Server → Client notification."""

    type: str  # state | result | unread | event | pong | error
    data: dict[str, Any] = Field(default_factory=dict)


class InlineAttachment(BaseModel):
    """Image sent over a WebSocket as base64."""

    filename: str | None = None
    content_type: str
    data_b64: str


class SendIntent(BaseModel):
    """Payload of a ``send`` intent."""

    text: str = ""
    attachment: InlineAttachment | None = None


class DeleteIntent(BaseModel):
    """Payload of a ``delete`` intent."""

    message_id: str = Field(..., min_length=1)


class ConversationView(BaseModel):
    """Everything the presentation layer renders for one open room."""

    messages: list[MessageRecord]
    has_more: bool
    loading: bool
    sending: bool
    deleting: bool
    error: str | None
    status: SessionStatusName
    room: ChatRoomRecord | None = None
