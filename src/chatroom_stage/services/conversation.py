# src/chatroom_stage/services/conversation.py
"""Conversation engine: one user's live view of one chat room.

A :class:`ConversationSession` loads the newest page of history, keeps it in
sync with the push-event channel, pages older history on demand and performs
send and delete on behalf of the viewing user. Operations never raise store
errors; they come back as an :class:`OperationResult` and the same message is
kept in the session's ``error`` field until dismissed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatroom_stage.core.errors import AuthorizationError, ChatError, ValidationError, error_message
from chatroom_stage.core.settings import settings
from chatroom_stage.schemas.chat_room import ChatRoomRecord
from chatroom_stage.schemas.message import MessageRecord
from chatroom_stage.schemas.realtime import ConversationView

from .attachments import AttachmentStore, AttachmentUpload
from .messages import EMPTY_MESSAGE, MessageStore
from .realtime import MESSAGES_COLLECTION, RESYNC, ChannelEvent, EventChannel, Subscription
from .rooms import NOT_PARTICIPANT, RoomDirectory

# Configure logger for this module
logger = logging.getLogger(__name__)

SESSION_CLOSED = "Conversation is closed"
SEND_IN_FLIGHT = "A message is already being sent"
DELETE_IN_FLIGHT = "A message is already being deleted"
LIVE_UPDATE_FAILED = "Live updates failed; reload the conversation"


class SessionStatus(str, Enum):
    """Lifecycle of a conversation session."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    LOADING_MORE = "loading_more"
    CLOSED = "closed"


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a session operation; ``error`` is None on success."""

    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "error": self.error, "data": self.data}


@dataclass
class ConversationState:
    """Mutable state rendered by the presentation layer."""

    messages: list[MessageRecord] = field(default_factory=list)
    room: ChatRoomRecord | None = None
    status: SessionStatus = SessionStatus.IDLE
    has_more: bool = False
    offset: int = 0
    sending: bool = False
    deleting: bool = False
    error: str | None = None

    @property
    def loading(self) -> bool:
        return self.status in (SessionStatus.LOADING, SessionStatus.LOADING_MORE)


StateListener = Callable[[ConversationView], None]


async def send_with_attachment(
    *,
    messages: MessageStore,
    attachments: AttachmentStore,
    room_id: str,
    sender_id: str,
    text: str = "",
    attachment: AttachmentUpload | None = None,
) -> MessageRecord:
    """Upload an optional image and append the message that references it.

    If the append fails after the upload succeeded, the uploaded blob is
    deleted before the original error is re-raised.

    Raises:
        ChatError: The first failure of the upload or the append.
    """
    if not (text or "").strip() and attachment is None:
        raise ValidationError(EMPTY_MESSAGE)

    attachment_id: str | None = None
    if attachment is not None:
        uploaded = await attachments.upload(attachment, owner_id=sender_id)
        attachment_id = uploaded.id

    try:
        return await messages.append(room_id, sender_id, text, attachment_id)
    except Exception:
        if attachment_id is not None:
            await _discard_attachment(attachments, attachment_id)
        raise


async def _discard_attachment(attachments: AttachmentStore, attachment_id: str) -> None:
    try:
        await attachments.delete(attachment_id)
    except ChatError as exc:
        logger.error("Could not remove orphaned attachment %s: %s", attachment_id, exc)
    else:
        logger.info("Removed orphaned attachment %s after failed send", attachment_id)


def _merge(current: list[MessageRecord], incoming: list[MessageRecord]) -> list[MessageRecord]:
    """Union two message lists by ID, ascending by ``created_at``."""
    by_id = {message.id: message for message in current}
    for message in incoming:
        by_id[message.id] = message
    return sorted(by_id.values(), key=lambda message: message.created_at)


class ConversationSession:
    """Live, paginated view of one room for one user.

    Typical use::

        async with ConversationSession(room_id, user_id, rooms=..., messages=...,
                                       attachments=..., channel=...) as session:
            await session.send("hello")
    """

    def __init__(
        self,
        room_id: str,
        current_user_id: str,
        *,
        rooms: RoomDirectory,
        messages: MessageStore,
        attachments: AttachmentStore,
        channel: EventChannel,
        page_size: int | None = None,
    ) -> None:
        self.room_id = room_id
        self.current_user_id = current_user_id
        self.rooms = rooms
        self.messages = messages
        self.attachments = attachments
        self.channel = channel
        self.page_size = page_size or settings.messages_page_size
        self.state = ConversationState()
        self._listeners: list[StateListener] = []
        self._subscription: Subscription | None = None
        self._consumer: asyncio.Task[None] | None = None

    async def __aenter__(self) -> ConversationSession:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def active(self) -> bool:
        return self.state.status is not SessionStatus.CLOSED

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback receiving a snapshot after every state change.

        Returns:
            A function that unregisters the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def snapshot(self) -> ConversationView:
        """Return an immutable copy of the current state."""
        return ConversationView(
            messages=list(self.state.messages),
            has_more=self.state.has_more,
            loading=self.state.loading,
            sending=self.state.sending,
            deleting=self.state.deleting,
            error=self.state.error,
            status=self.state.status.value,
            room=self.state.room,
        )

    async def open(self) -> OperationResult:
        """Subscribe to live message events and load the newest page."""
        if not self.active:
            return OperationResult(error=SESSION_CLOSED)
        if self._subscription is None:
            self._subscription = self.channel.subscribe(
                MESSAGES_COLLECTION, scope={"chat_room_id": self.room_id}
            )
            self._consumer = asyncio.create_task(self._consume(self._subscription))
        return await self.reload()

    async def reload(self) -> OperationResult:
        """(Re)load the newest page and mark the room read for the viewer."""
        if not self.active:
            return OperationResult(error=SESSION_CLOSED)
        if self.state.status is SessionStatus.LOADING:
            return OperationResult()

        self._update(status=SessionStatus.LOADING, error=None)
        try:
            room = await self.rooms.get_room(self.room_id)
            if self.current_user_id not in room.participants:
                raise AuthorizationError(NOT_PARTICIPANT)
            page = await self.messages.page(
                self.room_id, limit=self.page_size, offset=0, anchor="newest"
            )
        except ChatError as exc:
            return self._fail("load conversation", exc, status=SessionStatus.IDLE)

        if not self.active:
            return OperationResult()
        self._update(
            room=room,
            messages=_merge(self.state.messages, page.messages),
            has_more=page.has_more,
            offset=len(page.messages),
            status=SessionStatus.READY,
        )

        try:
            await self.messages.mark_all_read(self.room_id, self.current_user_id)
            room = await self.rooms.mark_read(self.room_id, self.current_user_id)
        except ChatError as exc:
            return self._fail("mark conversation read", exc)
        if self.active:
            self._update(room=room)
        return OperationResult(data={"loaded": len(page.messages)})

    async def load_more(self) -> OperationResult:
        """Prepend the next older page; a no-op while loading or at the start."""
        if not self.active:
            return OperationResult(error=SESSION_CLOSED)
        if self.state.loading or not self.state.has_more:
            return OperationResult(data={"loaded": 0})

        self._update(status=SessionStatus.LOADING_MORE)
        try:
            page = await self.messages.page(
                self.room_id, limit=self.page_size, offset=self.state.offset, anchor="newest"
            )
        except ChatError as exc:
            return self._fail("load older messages", exc, status=SessionStatus.READY)

        if not self.active:
            return OperationResult()
        known = {message.id for message in self.state.messages}
        older = [message for message in page.messages if message.id not in known]
        self._update(
            messages=_merge(self.state.messages, older),
            has_more=page.has_more,
            offset=self.state.offset + len(page.messages),
            status=SessionStatus.READY,
        )
        return OperationResult(data={"loaded": len(older)})

    async def send(self, text: str = "", attachment: AttachmentUpload | None = None) -> OperationResult:
        """Send a message as the viewing user.

        The message reaches ``messages`` through the live channel, not from
        this call's return value.
        """
        if not self.active:
            return OperationResult(error=SESSION_CLOSED)
        if not (text or "").strip() and attachment is None:
            self._update(error=EMPTY_MESSAGE)
            return OperationResult(error=EMPTY_MESSAGE)
        if self.state.sending:
            return OperationResult(error=SEND_IN_FLIGHT)

        self._update(sending=True, error=None)
        try:
            message = await send_with_attachment(
                messages=self.messages,
                attachments=self.attachments,
                room_id=self.room_id,
                sender_id=self.current_user_id,
                text=text,
                attachment=attachment,
            )
        except ChatError as exc:
            return self._fail("send message", exc)
        finally:
            if self.active:
                self._update(sending=False)
        return OperationResult(data={"message_id": message.id})

    async def delete(self, message_id: str) -> OperationResult:
        """Delete one of the viewing user's own messages."""
        if not self.active:
            return OperationResult(error=SESSION_CLOSED)
        if self.state.deleting:
            return OperationResult(error=DELETE_IN_FLIGHT)

        self._update(deleting=True, error=None)
        try:
            await self.messages.remove(message_id, self.current_user_id)
        except ChatError as exc:
            return self._fail("delete message", exc)
        finally:
            if self.active:
                self._update(deleting=False)

        if self.active and self._discard(message_id):
            self._notify()
        return OperationResult(data={"message_id": message_id})

    def dismiss_error(self) -> OperationResult:
        """Clear the displayed error."""
        if self.active and self.state.error is not None:
            self._update(error=None)
        return OperationResult()

    async def close(self) -> None:
        """Release the channel subscription and stop reacting to events."""
        if not self.active:
            return
        self.state.status = SessionStatus.CLOSED
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        consumer, self._consumer = self._consumer, None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        self._notify()
        self._listeners.clear()
        logger.debug("Closed conversation %s for %s", self.room_id, self.current_user_id)

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            if not self.active:
                return
            try:
                if event.kind == RESYNC:
                    await self._resync()
                else:
                    await self._apply(event)
            except ChatError as exc:
                logger.warning("Failed to apply %s event in room %s: %s", event.kind, self.room_id, exc)
                if self.active:
                    self._update(error=str(exc))
            except (ValueError, TypeError, KeyError) as exc:
                logger.error("Discarding malformed %s event: %s", event.kind, exc, exc_info=True)
            except Exception:
                logger.exception("Unexpected failure applying %s event in room %s", event.kind, self.room_id)
                if self.active:
                    self._update(error=LIVE_UPDATE_FAILED)

    async def _resync(self) -> None:
        """Re-read the loaded window after the channel dropped events for this session."""
        window = max(self.state.offset, self.page_size)
        fetched: list[MessageRecord] = []
        offset = 0
        has_more = False
        while offset < window:
            page = await self.messages.page(
                self.room_id, limit=self.page_size, offset=offset, anchor="newest"
            )
            fetched = page.messages + fetched
            offset += len(page.messages)
            has_more = page.has_more
            if not page.messages or not page.has_more:
                break

        if not self.active:
            return
        logger.info("Resynchronised room %s for %s (%d messages)", self.room_id, self.current_user_id, offset)
        self._update(messages=_merge([], fetched), offset=offset, has_more=has_more)

        await self.messages.mark_all_read(self.room_id, self.current_user_id)
        room = await self.rooms.mark_read(self.room_id, self.current_user_id)
        if self.active:
            self._update(room=room)

    async def _apply(self, event: ChannelEvent) -> None:
        if event.payload.get("chat_room_id") != self.room_id:
            return
        message = MessageRecord.model_validate(event.payload)

        if event.kind == "create":
            if self._insert(message):
                self._notify()
            if message.sender_id != self.current_user_id and not message.is_read:
                await self.messages.set_read(message.id)
                room = await self.rooms.mark_read(self.room_id, self.current_user_id)
                if self.active:
                    self._update(room=room)
        elif event.kind == "update":
            if self._replace(message):
                self._notify()
        elif event.kind == "delete":
            if self._discard(message.id):
                self._notify()

    def _insert(self, message: MessageRecord) -> bool:
        messages = self.state.messages
        if any(existing.id == message.id for existing in messages):
            return False
        index = len(messages)
        while index > 0 and messages[index - 1].created_at > message.created_at:
            index -= 1
        messages.insert(index, message)
        self.state.offset += 1
        return True

    def _replace(self, message: MessageRecord) -> bool:
        for index, existing in enumerate(self.state.messages):
            if existing.id == message.id:
                self.state.messages[index] = message
                return True
        return False

    def _discard(self, message_id: str) -> bool:
        for index, existing in enumerate(self.state.messages):
            if existing.id == message_id:
                del self.state.messages[index]
                self.state.offset = max(0, self.state.offset - 1)
                return True
        return False

    def _fail(
        self, action: str, exc: BaseException, status: SessionStatus | None = None
    ) -> OperationResult:
        message = error_message(exc)
        logger.warning("Failed to %s in room %s: %s", action, self.room_id, message)
        if self.active:
            changes: dict[str, Any] = {"error": message}
            if status is not None:
                changes["status"] = status
            self._update(**changes)
        return OperationResult(error=message)

    def _update(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self.state, name, value)
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Conversation listener failed")
