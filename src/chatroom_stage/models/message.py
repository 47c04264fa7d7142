# src/chatroom_stage/models/message.py
"""Models describing messages exchanged inside a chat room."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chatroom_stage.db.ids import new_object_id
from chatroom_stage.db.session import Base
from chatroom_stage.db.time import utcnow

from .chat_room import USER_ID_LENGTH

if TYPE_CHECKING:
    from .chat_room import ChatRoom


class Message(Base):
    """Text and/or image message authored by one room participant.

    History is ordered by ``created_at``; ``seq`` only breaks ties between
    messages stored within the same clock tick.
    """

    __tablename__ = "chat_message"
    __table_args__ = (Index("ix_chat_message_room_created", "chat_room_id", "created_at"),)

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, default=new_object_id)

    chat_room_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("chat_room.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False, index=True)

    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attachment_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Flipped once by the recipient's client.
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    room: Mapped[ChatRoom] = relationship("ChatRoom", back_populates="messages")
