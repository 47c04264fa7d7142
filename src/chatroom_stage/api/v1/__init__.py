# src/chatroom_stage/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    attachments_router,
    messages_router,
    realtime_router,
    rooms_router,
)

__all__ = [
    "rooms_router",
    "messages_router",
    "attachments_router",
    "realtime_router",
]
