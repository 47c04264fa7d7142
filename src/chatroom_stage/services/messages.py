# src/chatroom_stage/services/messages.py
"""Message store: append, page, delete and read-flag room messages."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from chatroom_stage.core.errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
    translate_errors,
)
from chatroom_stage.core.settings import settings
from chatroom_stage.models import ChatRoom, Message
from chatroom_stage.schemas.message import MessagePage, MessageRecord, PageAnchor

from .realtime import MESSAGES_COLLECTION, EventChannel
from .rooms import NOT_PARTICIPANT, RoomDirectory

# Configure logger for this module
logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "Message cannot be empty"
NOT_SENDER = "Unauthorized: You can only delete your own messages"
SEARCH_LIMIT = 20


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MessageStore:
    """Persistence adapter for room messages.

    Appending a message also bumps the recipient's unread counter and the
    room's ``last_message_time`` in the same transaction.
    """

    def __init__(
        self,
        db: Session,
        channel: EventChannel | None = None,
        rooms: RoomDirectory | None = None,
    ) -> None:
        self.db = db
        self.channel = channel
        self.rooms = rooms or RoomDirectory(db, channel)

    @translate_errors("Failed to send message.")
    async def append(
        self,
        room_id: str,
        sender_id: str,
        text: str = "",
        attachment_id: str | None = None,
    ) -> MessageRecord:
        """Store a new message from ``sender_id``.

        Args:
            room_id: Target room.
            sender_id: Author; must be a participant of the room.
            text: Message body; surrounding whitespace is stripped.
            attachment_id: Optional uploaded image.

        Returns:
            The stored message.

        Raises:
            ValidationError: If both text and attachment are empty.
            NotFoundError: If the room does not exist.
            AuthorizationError: If the sender is not a participant.
        """
        body = (text or "").strip()
        if not body and not attachment_id:
            raise ValidationError(EMPTY_MESSAGE)

        room = self.db.query(ChatRoom).filter(ChatRoom.id == room_id).first()
        if room is None:
            raise NotFoundError("Chat room not found")
        if not room.has_participant(sender_id):
            raise AuthorizationError(NOT_PARTICIPANT)

        message = Message(
            chat_room_id=room_id,
            sender_id=sender_id,
            text=body,
            attachment_id=attachment_id,
            is_read=False,
        )
        self.db.add(message)
        self.db.flush()
        record = MessageRecord.model_validate(message)
        self.rooms.record_message(room_id, sender_id)
        self.db.commit()

        # Committed: announcement failures are logged, never reported as a failed send.
        logger.debug("Stored message %s in room %s", record.id, room_id)
        self._publish("create", record)
        try:
            self.rooms.announce(room_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Stored message %s but could not announce room %s: %s", record.id, room_id, exc)
        return record

    @translate_errors("Failed to fetch messages.")
    async def page(
        self,
        room_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
        unread_only: bool = False,
        exclude_sender_id: str | None = None,
        anchor: PageAnchor = "oldest",
    ) -> MessagePage:
        """Return one page of a room's history in ascending ``created_at`` order.

        With ``anchor="oldest"`` the offset counts from the first message ever
        sent; with ``anchor="newest"`` it counts back from the latest one, so
        offset 0 is the most recent page and each further page is older.

        Args:
            room_id: Room whose history is read.
            limit: Page size; defaults to the configured page size.
            offset: Number of messages skipped from the anchor.
            unread_only: Only return messages not yet read.
            exclude_sender_id: Skip messages authored by this user.
            anchor: Which end of the history the offset counts from.

        Returns:
            The page, the total matching count and whether more remain.
        """
        limit = settings.messages_page_size if limit is None else limit
        if limit < 1 or limit > settings.messages_max_page_size or offset < 0:
            raise ValidationError("Invalid pagination parameters")

        query = self._filtered(room_id, unread_only, exclude_sender_id)
        total = query.count()
        if anchor == "newest":
            rows = (
                query.order_by(Message.created_at.desc(), Message.seq.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            rows.reverse()
        else:
            rows = (
                query.order_by(Message.created_at.asc(), Message.seq.asc())
                .offset(offset)
                .limit(limit)
                .all()
            )

        return MessagePage(
            messages=[MessageRecord.model_validate(row) for row in rows],
            total=total,
            has_more=total > offset + limit,
        )

    @translate_errors("Failed to fetch message.")
    async def get(self, message_id: str) -> MessageRecord:
        """Return the message with ``message_id``.

        Raises:
            NotFoundError: If the message does not exist.
        """
        return MessageRecord.model_validate(self._load(message_id))

    @translate_errors("Failed to delete message.")
    async def remove(self, message_id: str, requester_id: str) -> None:
        """Delete a message authored by ``requester_id``.

        Raises:
            NotFoundError: If the message does not exist.
            AuthorizationError: If the requester is not the sender.
        """
        message = self._load(message_id)
        if message.sender_id != requester_id:
            raise AuthorizationError(NOT_SENDER)

        record = MessageRecord.model_validate(message)
        self.db.delete(message)
        self.db.commit()
        logger.debug("Deleted message %s from room %s", message_id, record.chat_room_id)
        self._publish("delete", record)

    @translate_errors("Failed to mark message as read.")
    async def set_read(self, message_id: str, reader_id: str | None = None) -> MessageRecord:
        """Flag a message as read; already-read messages are left untouched.

        Args:
            message_id: Message to flag.
            reader_id: When given, must be the recipient rather than the sender.

        Raises:
            NotFoundError: If the message does not exist.
            AuthorizationError: If ``reader_id`` is the sender or not in the room.
        """
        message = self._load(message_id)
        if reader_id is not None:
            if message.sender_id == reader_id:
                raise AuthorizationError("Only the recipient can mark a message as read")
            if not message.room.has_participant(reader_id):
                raise AuthorizationError(NOT_PARTICIPANT)

        if message.is_read:
            return MessageRecord.model_validate(message)

        message.is_read = True
        self.db.commit()
        record = MessageRecord.model_validate(message)
        self._publish("update", record)
        return record

    @translate_errors("Failed to mark messages as read.")
    async def mark_all_read(self, room_id: str, user_id: str) -> int:
        """Flag the oldest batch of unread messages sent to ``user_id`` as read.

        Returns:
            The number of messages flagged.
        """
        batch = await self.page(
            room_id,
            limit=settings.mark_read_batch_size,
            unread_only=True,
            exclude_sender_id=user_id,
        )
        for message in batch.messages:
            await self.set_read(message.id)
        if batch.messages:
            logger.debug("Marked %d message(s) read in room %s", len(batch.messages), room_id)
        return len(batch.messages)

    @translate_errors("Failed to fetch unread count.")
    async def unread_count(self, room_id: str, user_id: str) -> int:
        """Count unread messages in the room sent to ``user_id``."""
        return self._filtered(room_id, unread_only=True, exclude_sender_id=user_id).count()

    @translate_errors("Failed to fetch last message.")
    async def last_message(self, room_id: str) -> MessageRecord | None:
        """Return the newest message of the room, if any."""
        row = (
            self._filtered(room_id)
            .order_by(Message.created_at.desc(), Message.seq.desc())
            .first()
        )
        return MessageRecord.model_validate(row) if row is not None else None

    @translate_errors("Failed to search messages.")
    async def search(self, room_id: str, term: str, limit: int = SEARCH_LIMIT) -> list[MessageRecord]:
        """Return messages whose text contains ``term``, newest first."""
        term = (term or "").strip()
        if not term:
            raise ValidationError("Search term cannot be empty")
        rows = (
            self._filtered(room_id)
            .filter(Message.text.ilike(f"%{_escape_like(term)}%", escape="\\"))
            .order_by(Message.created_at.desc(), Message.seq.desc())
            .limit(limit)
            .all()
        )
        return [MessageRecord.model_validate(row) for row in rows]

    def _filtered(
        self,
        room_id: str,
        unread_only: bool = False,
        exclude_sender_id: str | None = None,
    ) -> Query[Message]:
        query = self.db.query(Message).filter(Message.chat_room_id == room_id)
        if unread_only:
            query = query.filter(Message.is_read.is_(False))
        if exclude_sender_id:
            query = query.filter(Message.sender_id != exclude_sender_id)
        return query.populate_existing()

    def _load(self, message_id: str) -> Message:
        message = (
            self.db.query(Message).filter(Message.id == message_id).populate_existing().first()
        )
        if message is None:
            raise NotFoundError("Message not found")
        return message

    def _publish(self, kind: str, record: MessageRecord) -> None:
        if self.channel is not None:
            self.channel.publish(MESSAGES_COLLECTION, kind, record.model_dump(mode="json"))
