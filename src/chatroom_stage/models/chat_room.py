# src/chatroom_stage/models/chat_room.py
"""Models describing two-participant chat rooms and their unread counters."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chatroom_stage.db.ids import new_object_id
from chatroom_stage.db.session import Base
from chatroom_stage.db.time import utcnow

if TYPE_CHECKING:
    from .message import Message

USER_ID_LENGTH = 128


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Return the two user IDs in ascending order."""
    low, high = sorted((user_a, user_b))
    return low, high


def pair_key_for(user_a: str, user_b: str) -> str:
    """Return the order-independent key identifying a participant pair."""
    low, high = canonical_pair(user_a, user_b)
    return f"{low}:{high}"


class ChatRoom(Base):
    """Conversation container shared by exactly two users.

    ``pair_key`` is unique so a participant pair can only ever own one room,
    whatever order the users resolve it in.
    """

    __tablename__ = "chat_room"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_object_id)
    participant_low: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False, index=True)
    participant_high: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False, index=True)
    pair_key: Mapped[str] = mapped_column(String(2 * USER_ID_LENGTH + 1), nullable=False, unique=True)

    # Best-effort recency marker; message history is ordered by Message.created_at.
    last_message_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    members: Mapped[list[ChatRoomParticipant]] = relationship(
        "ChatRoomParticipant",
        back_populates="room",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ChatRoomParticipant.user_id",
    )
    messages: Mapped[list[Message]] = relationship(
        "Message",
        back_populates="room",
        cascade="all, delete-orphan",
        lazy="select",
    )

    @property
    def participants(self) -> list[str]:
        """Return both participant IDs in canonical order."""
        return [self.participant_low, self.participant_high]

    @property
    def unread_count(self) -> dict[str, int]:
        """Return the unread counter of each participant."""
        counts = {user_id: 0 for user_id in self.participants}
        for member in self.members:
            counts[member.user_id] = member.unread_count
        return counts

    def has_participant(self, user_id: str) -> bool:
        """Return True if ``user_id`` is one of the two participants."""
        return user_id in (self.participant_low, self.participant_high)


class ChatRoomParticipant(Base):
    """Per-participant unread counter, one row per room member.

    Counters are changed with single-statement increments and resets so two
    sessions updating the same room never overwrite each other.
    """

    __tablename__ = "chat_room_participant"
    __table_args__ = (UniqueConstraint("room_id", "user_id", name="uq_room_participant"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("chat_room.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(USER_ID_LENGTH), nullable=False, index=True)
    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    room: Mapped[ChatRoom] = relationship("ChatRoom", back_populates="members")
