# src/chatroom_stage/models/__init__.py
"""SQLAlchemy models for the Chatroom Stage application."""

from .attachment import Attachment
from .chat_room import ChatRoom, ChatRoomParticipant
from .message import Message

__all__ = [
    "Attachment",
    "ChatRoom", "ChatRoomParticipant",
    "Message",
]
