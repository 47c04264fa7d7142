# src/chatroom_stage/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .attachments import router as attachments_router
from .messages import router as messages_router
from .realtime import router as realtime_router
from .rooms import router as rooms_router

__all__ = [
    "rooms_router",
    "messages_router",
    "attachments_router",
    "realtime_router",
]
