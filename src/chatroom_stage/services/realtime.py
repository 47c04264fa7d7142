"""In-process push-event channel for stored collections.

Every write performed by the room and message adapters is announced here as a
``create``, ``update`` or ``delete`` event carrying the full record payload.
Consumers subscribe per collection and may narrow the stream with a scope so
that only events whose payload matches are queued for them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from chatroom_stage.core.settings import settings
from chatroom_stage.db.time import utcnow

# Configure logger for this module
logger = logging.getLogger(__name__)

EventKind = Literal["create", "update", "delete", "resync"]
EVENT_KINDS: frozenset[str] = frozenset({"create", "update", "delete"})

# Queued by a subscription in place of events it had to drop.
RESYNC = "resync"

MESSAGES_COLLECTION = "messages"
CHAT_ROOMS_COLLECTION = "chat_rooms"


@dataclass(frozen=True)
class ChannelEvent:
    """A single change notification for one stored record."""

    kind: EventKind
    collection: str
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-friendly wire form of the event."""
        return {
            "kind": self.kind,
            "collection": self.collection,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class Subscription:
    """Handle for one consumer of the channel.

    Iterate it with ``async for`` to receive events; ``close`` ends the
    iteration and detaches the handle from the channel. Closing twice is a
    no-op.
    """

    def __init__(
        self,
        channel: EventChannel,
        collection: str,
        scope: Mapping[str, Any] | None,
        maxsize: int,
    ) -> None:
        self.collection = collection
        self.scope = dict(scope or {})
        self._channel = channel
        self._queue: asyncio.Queue[ChannelEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        """Return True once the subscription has been released."""
        return self._closed

    def matches(self, event: ChannelEvent) -> bool:
        """Return True if ``event`` belongs to this subscription's collection and scope.

        A scope entry matches when the payload value equals it, or when the
        payload value is a list containing it (e.g. room participants).
        """
        if event.collection != self.collection:
            return False
        for key, expected in self.scope.items():
            value = event.payload.get(key)
            if value == expected:
                continue
            if isinstance(value, list) and expected in value:
                continue
            return False
        return True

    def offer(self, event: ChannelEvent) -> None:
        """Queue ``event`` without blocking.

        On overflow the queued backlog and ``event`` are discarded and a single
        ``resync`` event takes their place; the consumer must re-read the store.
        """
        if self._closed:
            return
        if not self._queue.full():
            self._queue.put_nowait(event)
            return
        lost = 1
        while not self._queue.empty():
            if self._queue.get_nowait().kind != RESYNC:
                lost += 1
        self.dropped += lost
        logger.warning(
            "Subscription on %s overflowed; replaced %d event(s) with a resync (%d dropped total)",
            self.collection,
            lost,
            self.dropped,
        )
        self._queue.put_nowait(ChannelEvent(kind=RESYNC, collection=self.collection, payload={}))

    async def get(self) -> ChannelEvent | None:
        """Wait for the next event; ``None`` means the subscription was closed."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        """Detach from the channel and wake any pending ``get``."""
        if self._closed:
            return
        self._closed = True
        self._channel.discard(self)
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChannelEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventChannel:
    """Fan-out hub delivering change events to collection subscribers."""

    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = max(1, queue_size or settings.channel_queue_size)
        self._subscriptions: list[Subscription] = []

    def subscribe(self, collection: str, scope: Mapping[str, Any] | None = None) -> Subscription:
        """Register a new consumer for ``collection``.

        Args:
            collection: Collection name, e.g. ``"messages"``.
            scope: Optional payload fields every delivered event must match.

        Returns:
            The subscription handle; release it with ``close()``.
        """
        subscription = Subscription(self, collection, scope, self._queue_size)
        self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s with scope %s", collection, subscription.scope)
        return subscription

    def discard(self, subscription: Subscription) -> None:
        """Forget ``subscription``; unknown handles are ignored."""
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("Unsubscribed from %s", subscription.collection)

    def publish(self, collection: str, kind: str, payload: Mapping[str, Any]) -> ChannelEvent:
        """Announce a change to every matching subscriber.

        Raises:
            ValueError: If ``kind`` is not one of create, update or delete.
        """
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unsupported event kind: {kind}")
        event = ChannelEvent(kind=kind, collection=collection, payload=dict(payload))  # type: ignore[arg-type]
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.offer(event)
                delivered += 1
        logger.debug(
            "Published %s on %s for %s to %d subscriber(s)",
            kind,
            collection,
            payload.get("id"),
            delivered,
        )
        return event

    def subscriber_count(self, collection: str | None = None) -> int:
        """Return the number of live subscriptions, optionally for one collection."""
        if collection is None:
            return len(self._subscriptions)
        return sum(1 for sub in self._subscriptions if sub.collection == collection)

    def close(self) -> None:
        """Close every subscription, e.g. on application shutdown."""
        for subscription in list(self._subscriptions):
            subscription.close()


_event_channel: EventChannel | None = None


def get_event_channel() -> EventChannel:
    """Return the process-wide event channel."""
    global _event_channel
    if _event_channel is None:
        _event_channel = EventChannel()
    return _event_channel
