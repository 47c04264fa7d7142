"""Service layer for Chatroom Stage: store adapters, event channel and conversation engine."""

from .attachments import AttachmentStore, AttachmentUpload
from .conversation import ConversationSession, OperationResult, SessionStatus, send_with_attachment
from .messages import MessageStore
from .realtime import ChannelEvent, EventChannel, Subscription, get_event_channel
from .rooms import RoomDirectory
from .unread_poller import UnreadBadgePoller

__all__ = [
    "AttachmentStore",
    "AttachmentUpload",
    "ChannelEvent",
    "ConversationSession",
    "EventChannel",
    "MessageStore",
    "OperationResult",
    "RoomDirectory",
    "SessionStatus",
    "Subscription",
    "UnreadBadgePoller",
    "get_event_channel",
    "send_with_attachment",
]
