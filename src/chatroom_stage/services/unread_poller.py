# src/chatroom_stage/services/unread_poller.py
"""Background refresh of a user's total unread badge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from chatroom_stage.core.errors import ChatError
from chatroom_stage.core.settings import settings

from .rooms import RoomDirectory

# Configure logger for this module
logger = logging.getLogger(__name__)

BadgeListener = Callable[[int], None]


class UnreadBadgePoller:
    """Periodically recomputes a user's unread total and reports changes.

    Listeners are called with the new total whenever it differs from the last
    value seen, including the first successful refresh. Failed refreshes keep
    the previous total.
    """

    def __init__(
        self,
        rooms: RoomDirectory,
        user_id: str,
        interval: float | None = None,
    ) -> None:
        self.rooms = rooms
        self.user_id = user_id
        self.interval = max(0.1, float(interval or settings.unread_poll_interval_seconds))
        self.count: int | None = None
        self._listeners: list[BadgeListener] = []
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    def add_listener(self, listener: BadgeListener) -> None:
        """Register a callback receiving the unread total on every change."""
        self._listeners.append(listener)

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background polling loop."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def refresh(self) -> int | None:
        """Recompute the unread total now and notify listeners if it changed."""
        try:
            total = await self.rooms.get_unread_total(self.user_id)
        except ChatError as e:
            logger.warning("Unread badge refresh failed for %s: %s", self.user_id, e)
            return self.count

        if total != self.count:
            self.count = total
            for listener in list(self._listeners):
                listener(total)
        return total

    async def _run(self) -> None:
        while not self._stopping.is_set():
            await self.refresh()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except TimeoutError:
                continue
