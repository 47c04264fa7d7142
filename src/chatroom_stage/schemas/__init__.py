# src/chatroom_stage/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .chat_room import ChatRoomList, ChatRoomRecord, ChatRoomResolveRequest, ChatRoomResolveResponse
from .common import StatusResponse, UnreadCountResponse
from .message import AttachmentRecord, MessageLookup, MessagePage, MessageRecord, MessageSearchResult
from .realtime import ConversationView, WsInbound, WsOutbound

__all__ = [
    "ChatRoomList", "ChatRoomRecord", "ChatRoomResolveRequest", "ChatRoomResolveResponse",
    "StatusResponse", "UnreadCountResponse",
    "AttachmentRecord", "MessageLookup", "MessagePage", "MessageRecord", "MessageSearchResult",
    "ConversationView", "WsInbound", "WsOutbound",
]
