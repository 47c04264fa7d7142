# src/chatroom_stage/api/v1/endpoints/realtime.py
"""WebSocket endpoints: live conversation sessions and the unread badge stream."""

from __future__ import annotations

import asyncio
import base64
import binascii
import contextlib
import logging
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from chatroom_stage.core.errors import ChatError
from chatroom_stage.core.security import InvalidTokenError, decode_access_token
from chatroom_stage.schemas.realtime import (
    ConversationView,
    DeleteIntent,
    SendIntent,
    WsInbound,
    WsOutbound,
)
from chatroom_stage.services.attachments import AttachmentUpload
from chatroom_stage.services.conversation import ConversationSession, OperationResult
from chatroom_stage.services.realtime import CHAT_ROOMS_COLLECTION, Subscription
from chatroom_stage.services.unread_poller import UnreadBadgePoller

from ..dependencies import AttachmentsDep, ChannelDep, MessagesDep, RoomsDep

router = APIRouter(prefix="/ws", tags=["realtime"])

# Configure logger for this module
logger = logging.getLogger(__name__)


def _authenticate(token: str | None) -> str | None:
    if not token:
        return None
    try:
        return decode_access_token(token)
    except InvalidTokenError:
        return None


async def _drain(websocket: WebSocket, outbox: asyncio.Queue[WsOutbound]) -> None:
    """Forward queued notifications to the client in order."""
    while True:
        message = await outbox.get()
        await websocket.send_json(message.model_dump(mode="json"))


async def _cancel(task: asyncio.Task[None]) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
        await task


def _decode_attachment(intent: SendIntent) -> AttachmentUpload | None:
    if intent.attachment is None:
        return None
    data = base64.b64decode(intent.attachment.data_b64, validate=True)
    return AttachmentUpload(
        data=data,
        content_type=intent.attachment.content_type,
        filename=intent.attachment.filename,
    )


async def _dispatch(session: ConversationSession, intent: WsInbound) -> OperationResult | WsOutbound:
    """Run one client intent against the session."""
    if intent.type == "ping":
        return WsOutbound(type="pong", data=intent.data)
    if intent.type == "send":
        send = SendIntent.model_validate(intent.data)
        try:
            attachment = _decode_attachment(send)
        except (binascii.Error, ValueError):
            return OperationResult(error="Attachment must be valid base64")
        return await session.send(send.text, attachment)
    if intent.type == "delete":
        delete = DeleteIntent.model_validate(intent.data)
        return await session.delete(delete.message_id)
    if intent.type == "load_more":
        return await session.load_more()
    if intent.type == "reload":
        return await session.reload()
    if intent.type == "dismiss_error":
        return session.dismiss_error()
    return WsOutbound(type="error", data={"detail": f"Unsupported intent: {intent.type}"})


@router.websocket("/rooms/{room_id}")
async def conversation_socket(
    websocket: WebSocket,
    room_id: str,
    rooms: RoomsDep,
    messages: MessagesDep,
    attachments: AttachmentsDep,
    channel: ChannelDep,
    token: str | None = Query(None),
) -> None:
    """Drive a conversation session for one room over a WebSocket."""
    user_id = _authenticate(token)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Could not validate credentials")
        return

    try:
        room = await rooms.get_room(room_id)
    except ChatError as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc))
        return
    if user_id not in room.participants:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Not a participant")
        return

    await websocket.accept()
    outbox: asyncio.Queue[WsOutbound] = asyncio.Queue()
    session = ConversationSession(
        room_id,
        user_id,
        rooms=rooms,
        messages=messages,
        attachments=attachments,
        channel=channel,
    )

    def push_state(view: ConversationView) -> None:
        outbox.put_nowait(WsOutbound(type="state", data=view.model_dump(mode="json")))

    remove_listener = session.add_listener(push_state)
    sender = asyncio.create_task(_drain(websocket, outbox))
    try:
        await session.open()
        while True:
            raw: Any = await websocket.receive_json()
            try:
                intent = WsInbound.model_validate(raw)
                outcome = await _dispatch(session, intent)
            except PydanticValidationError as exc:
                outbox.put_nowait(WsOutbound(type="error", data={"detail": exc.errors(include_url=False)}))
                continue
            if isinstance(outcome, WsOutbound):
                outbox.put_nowait(outcome)
            else:
                outbox.put_nowait(WsOutbound(type="result", data={"intent": intent.type, **outcome.to_dict()}))
    except WebSocketDisconnect:
        logger.debug("Conversation socket for room %s closed by %s", room_id, user_id)
    finally:
        remove_listener()
        await session.close()
        await _cancel(sender)


async def _refresh_on_room_events(subscription: Subscription, poller: UnreadBadgePoller) -> None:
    async for event in subscription:
        logger.debug("Room %s changed; refreshing unread badge", event.payload.get("id"))
        await poller.refresh()


@router.websocket("/unread")
async def unread_socket(
    websocket: WebSocket,
    rooms: RoomsDep,
    channel: ChannelDep,
    token: str | None = Query(None),
) -> None:
    """Stream the caller's unread total whenever it changes.

    The total is refreshed on a fixed interval and immediately after any
    change to one of the caller's rooms.
    """
    user_id = _authenticate(token)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Could not validate credentials")
        return

    await websocket.accept()
    outbox: asyncio.Queue[WsOutbound] = asyncio.Queue()
    poller = UnreadBadgePoller(rooms, user_id)
    poller.add_listener(lambda count: outbox.put_nowait(WsOutbound(type="unread", data={"count": count})))

    subscription = channel.subscribe(CHAT_ROOMS_COLLECTION, scope={"participants": user_id})
    sender = asyncio.create_task(_drain(websocket, outbox))
    watcher = asyncio.create_task(_refresh_on_room_events(subscription, poller))
    await poller.start()
    try:
        while True:
            raw: Any = await websocket.receive_json()
            kind = raw.get("type") if isinstance(raw, dict) else None
            if kind == "ping":
                outbox.put_nowait(WsOutbound(type="pong"))
            elif kind == "refresh":
                await poller.refresh()
    except WebSocketDisconnect:
        logger.debug("Unread socket closed by %s", user_id)
    finally:
        subscription.close()
        await poller.stop()
        await _cancel(watcher)
        await _cancel(sender)
