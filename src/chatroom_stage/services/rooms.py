# src/chatroom_stage/services/rooms.py
"""Room directory: resolve, list and maintain two-participant chat rooms."""

from __future__ import annotations

import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatroom_stage.core.errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
    translate_errors,
)
from chatroom_stage.core.settings import settings
from chatroom_stage.db.time import utcnow
from chatroom_stage.models import ChatRoom, ChatRoomParticipant
from chatroom_stage.models.chat_room import canonical_pair, pair_key_for
from chatroom_stage.schemas.chat_room import ChatRoomList, ChatRoomRecord

from .realtime import CHAT_ROOMS_COLLECTION, EventChannel

# Configure logger for this module
logger = logging.getLogger(__name__)

NOT_PARTICIPANT = "Unauthorized: You are not a participant in this chat"
ROOMS_PAGE_SIZE = 20


class RoomDirectory:
    """Persistence adapter for chat rooms and their unread counters.

    Every mutation is committed before it is announced on the event channel.
    """

    def __init__(self, db: Session, channel: EventChannel | None = None) -> None:
        self.db = db
        self.channel = channel

    @translate_errors("Failed to create chat room.")
    async def resolve_room(self, user_a: str, user_b: str) -> tuple[ChatRoomRecord, bool]:
        """Return the canonical room for a pair of users, creating it if absent.

        Two callers racing to create the same pair both end up with the single
        stored room: the loser's insert trips the unique ``pair_key`` and it
        re-reads the winner's row.

        Args:
            user_a: One participant.
            user_b: The other participant.

        Returns:
            The room record and whether this call created it.

        Raises:
            ValidationError: If an ID is blank or both IDs are the same user.
        """
        if not user_a or not user_b:
            raise ValidationError("Both participants are required")
        if user_a == user_b:
            raise ValidationError("You cannot start a chat with yourself")

        key = pair_key_for(user_a, user_b)
        existing = self._by_pair_key(key)
        if existing is not None:
            return self._to_record(existing), False

        low, high = canonical_pair(user_a, user_b)
        now = utcnow()
        room = ChatRoom(
            participant_low=low,
            participant_high=high,
            pair_key=key,
            last_message_time=now,
            created_at=now,
            updated_at=now,
        )
        room.members = [
            ChatRoomParticipant(user_id=low, unread_count=0),
            ChatRoomParticipant(user_id=high, unread_count=0),
        ]
        self.db.add(room)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Room for %s was created concurrently; using stored room", key)
            existing = self._by_pair_key(key)
            if existing is None:
                raise
            return self._to_record(existing), False

        record = self._to_record(room)
        logger.info("Created chat room %s for %s", record.id, key)
        self._publish("create", record)
        return record, True

    @translate_errors("Failed to fetch chat room.")
    async def find_room(self, user_a: str, user_b: str) -> ChatRoomRecord | None:
        """Return the room shared by two users, or None if they never chatted."""
        room = self._by_pair_key(pair_key_for(user_a, user_b))
        return self._to_record(room) if room is not None else None

    @translate_errors("Failed to fetch chat room.")
    async def get_room(self, room_id: str) -> ChatRoomRecord:
        """Return the room with ``room_id``.

        Raises:
            NotFoundError: If the room does not exist.
        """
        return self._to_record(self._load(room_id))

    @translate_errors("Failed to fetch chat rooms.")
    async def list_rooms(
        self, user_id: str, limit: int = ROOMS_PAGE_SIZE, offset: int = 0
    ) -> ChatRoomList:
        """Return rooms containing ``user_id``, most recent activity first."""
        if limit < 1 or offset < 0:
            raise ValidationError("Invalid pagination parameters")

        query = self.db.query(ChatRoom).filter(
            or_(ChatRoom.participant_low == user_id, ChatRoom.participant_high == user_id)
        )
        total = query.count()
        rooms = (
            query.order_by(ChatRoom.last_message_time.desc(), ChatRoom.id)
            .offset(offset)
            .limit(limit)
            .populate_existing()
            .all()
        )
        counts = self._unread_counts([room.id for room in rooms])
        return ChatRoomList(
            chat_rooms=[self._to_record(room, counts.get(room.id)) for room in rooms],
            total=total,
            has_more=total > offset + limit,
        )

    @translate_errors("Failed to mark messages as read.")
    async def mark_read(self, room_id: str, user_id: str) -> ChatRoomRecord:
        """Reset ``user_id``'s unread counter in the room to zero.

        Raises:
            NotFoundError: If the room does not exist.
            AuthorizationError: If ``user_id`` is not a participant.
        """
        room = self._load(room_id)
        if not room.has_participant(user_id):
            raise AuthorizationError(NOT_PARTICIPANT)

        changed = (
            self.db.query(ChatRoomParticipant)
            .filter(
                ChatRoomParticipant.room_id == room_id,
                ChatRoomParticipant.user_id == user_id,
                ChatRoomParticipant.unread_count != 0,
            )
            .update({ChatRoomParticipant.unread_count: 0}, synchronize_session=False)
        )
        self.db.commit()

        record = self._to_record(room)
        if changed:
            logger.debug("Cleared unread counter of %s in room %s", user_id, room_id)
            self._publish("update", record)
        return record

    def record_message(self, room_id: str, sender_id: str) -> None:
        """Bump the recipient's counter and the room's recency marker.

        Runs inside the caller's transaction; the caller commits and then
        calls :meth:`announce`.
        """
        now = utcnow()
        (
            self.db.query(ChatRoomParticipant)
            .filter(
                ChatRoomParticipant.room_id == room_id,
                ChatRoomParticipant.user_id != sender_id,
            )
            .update(
                {ChatRoomParticipant.unread_count: ChatRoomParticipant.unread_count + 1},
                synchronize_session=False,
            )
        )
        (
            self.db.query(ChatRoom)
            .filter(ChatRoom.id == room_id)
            .update(
                {ChatRoom.last_message_time: now, ChatRoom.updated_at: now},
                synchronize_session=False,
            )
        )

    def announce(self, room_id: str) -> None:
        """Publish the current state of a room after a committed change."""
        if self.channel is None:
            return
        room = self.db.query(ChatRoom).filter(ChatRoom.id == room_id).populate_existing().first()
        if room is not None:
            self._publish("update", self._to_record(room))

    @translate_errors("Failed to fetch unread count.")
    async def get_unread_total(self, user_id: str) -> int:
        """Sum ``user_id``'s unread counters over their most recent rooms."""
        page = await self.list_rooms(user_id, limit=settings.unread_fetch_ceiling)
        return sum(room.unread_count.get(user_id, 0) for room in page.chat_rooms)

    @translate_errors("Failed to delete chat room.")
    async def delete_room(self, room_id: str, user_id: str) -> None:
        """Delete a room and its history.

        Raises:
            NotFoundError: If the room does not exist.
            AuthorizationError: If ``user_id`` is not a participant.
        """
        room = self._load(room_id)
        if not room.has_participant(user_id):
            raise AuthorizationError(NOT_PARTICIPANT)

        record = self._to_record(room)
        self.db.delete(room)
        self.db.commit()
        logger.info("Deleted chat room %s", room_id)
        self._publish("delete", record)

    @staticmethod
    def other_participant(room: ChatRoomRecord, user_id: str) -> str | None:
        """Return the participant of ``room`` that is not ``user_id``."""
        for participant in room.participants:
            if participant != user_id:
                return participant
        return None

    def _load(self, room_id: str) -> ChatRoom:
        room = self.db.query(ChatRoom).filter(ChatRoom.id == room_id).populate_existing().first()
        if room is None:
            raise NotFoundError("Chat room not found")
        return room

    def _by_pair_key(self, key: str) -> ChatRoom | None:
        return self.db.query(ChatRoom).filter(ChatRoom.pair_key == key).populate_existing().first()

    def _unread_counts(self, room_ids: list[str]) -> dict[str, dict[str, int]]:
        counts: dict[str, dict[str, int]] = {}
        if not room_ids:
            return counts
        rows = (
            self.db.query(
                ChatRoomParticipant.room_id,
                ChatRoomParticipant.user_id,
                ChatRoomParticipant.unread_count,
            )
            .filter(ChatRoomParticipant.room_id.in_(room_ids))
            .all()
        )
        for room_id, user_id, unread in rows:
            counts.setdefault(room_id, {})[user_id] = unread
        return counts

    def _to_record(self, room: ChatRoom, counts: dict[str, int] | None = None) -> ChatRoomRecord:
        if counts is None:
            counts = self._unread_counts([room.id]).get(room.id, {})
        unread = {participant: 0 for participant in room.participants}
        unread.update(counts)
        return ChatRoomRecord(
            id=room.id,
            participants=room.participants,
            last_message_time=room.last_message_time,
            unread_count=unread,
            created_at=room.created_at,
            updated_at=room.updated_at,
        )

    def _publish(self, kind: str, record: ChatRoomRecord) -> None:
        if self.channel is not None:
            self.channel.publish(CHAT_ROOMS_COLLECTION, kind, record.model_dump(mode="json"))
