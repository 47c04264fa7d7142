# src/chatroom_stage/api/v1/endpoints/messages.py
"""Message endpoints for the Chatroom API."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from chatroom_stage.core.errors import ChatError
from chatroom_stage.core.settings import settings
from chatroom_stage.schemas.common import StatusResponse, UnreadCountResponse
from chatroom_stage.schemas.message import (
    MessageLookup,
    MessagePage,
    MessageRecord,
    MessageSearchResult,
    PageAnchor,
)
from chatroom_stage.services.attachments import AttachmentUpload
from chatroom_stage.services.conversation import send_with_attachment

from ..dependencies import (
    AttachmentsDep,
    CurrentUserDep,
    MessagesDep,
    RoomsDep,
    http_error,
    require_room_member,
)

router = APIRouter(tags=["messages"])


async def _read_upload(file: UploadFile | None) -> AttachmentUpload | None:
    if file is None or not file.filename:
        return None
    data = await file.read()
    return AttachmentUpload(
        data=data,
        content_type=file.content_type or "application/octet-stream",
        filename=file.filename,
    )


@router.get("/rooms/{room_id}/messages", response_model=MessagePage)
async def list_messages(
    room_id: str,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    messages: MessagesDep,
    limit: int = Query(settings.messages_page_size, ge=1, le=settings.messages_max_page_size),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False),
    exclude_sender_id: str | None = Query(None),
    anchor: PageAnchor = Query("oldest"),
) -> MessagePage:
    """Page through a room's history; results are always ascending by time."""
    await require_room_member(rooms, room_id, current_user)
    try:
        return await messages.page(
            room_id,
            limit=limit,
            offset=offset,
            unread_only=unread_only,
            exclude_sender_id=exclude_sender_id,
            anchor=anchor,
        )
    except ChatError as exc:
        raise http_error(exc) from exc


@router.post(
    "/rooms/{room_id}/messages",
    response_model=MessageRecord,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    room_id: str,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    messages: MessagesDep,
    attachments: AttachmentsDep,
    text: Annotated[str, Form()] = "",
    file: Annotated[UploadFile | None, File()] = None,
) -> MessageRecord:
    """Send a text and/or image message to the room."""
    await require_room_member(rooms, room_id, current_user)
    upload = await _read_upload(file)
    try:
        return await send_with_attachment(
            messages=messages,
            attachments=attachments,
            room_id=room_id,
            sender_id=current_user,
            text=text,
            attachment=upload,
        )
    except ChatError as exc:
        raise http_error(exc) from exc


@router.get("/rooms/{room_id}/messages/last", response_model=MessageLookup)
async def last_message(
    room_id: str,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    messages: MessagesDep,
) -> MessageLookup:
    """Return the newest message of the room, if any."""
    await require_room_member(rooms, room_id, current_user)
    try:
        return MessageLookup(message=await messages.last_message(room_id))
    except ChatError as exc:
        raise http_error(exc) from exc


@router.get("/rooms/{room_id}/messages/search", response_model=MessageSearchResult)
async def search_messages(
    room_id: str,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    messages: MessagesDep,
    q: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(20, ge=1, le=100),
) -> MessageSearchResult:
    """Search message text in the room, newest first."""
    await require_room_member(rooms, room_id, current_user)
    try:
        return MessageSearchResult(messages=await messages.search(room_id, q, limit=limit))
    except ChatError as exc:
        raise http_error(exc) from exc


@router.get("/rooms/{room_id}/messages/unread-count", response_model=UnreadCountResponse)
async def room_unread_count(
    room_id: str,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    messages: MessagesDep,
) -> UnreadCountResponse:
    """Count messages in the room the caller has not read yet."""
    await require_room_member(rooms, room_id, current_user)
    try:
        return UnreadCountResponse(count=await messages.unread_count(room_id, current_user))
    except ChatError as exc:
        raise http_error(exc) from exc


@router.get("/messages/{message_id}", response_model=MessageRecord)
async def get_message(
    message_id: str,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    messages: MessagesDep,
) -> MessageRecord:
    """Fetch one message from a room the caller participates in."""
    try:
        message = await messages.get(message_id)
    except ChatError as exc:
        raise http_error(exc) from exc
    await require_room_member(rooms, message.chat_room_id, current_user)
    return message


@router.delete("/messages/{message_id}", response_model=StatusResponse)
async def delete_message(
    message_id: str,
    current_user: CurrentUserDep,
    messages: MessagesDep,
) -> StatusResponse:
    """Delete one of the caller's own messages."""
    try:
        await messages.remove(message_id, current_user)
    except ChatError as exc:
        raise http_error(exc) from exc
    return StatusResponse(status="deleted")


@router.put("/messages/{message_id}/read", response_model=MessageRecord)
async def mark_message_read(
    message_id: str,
    current_user: CurrentUserDep,
    messages: MessagesDep,
) -> MessageRecord:
    """Flag a received message as read."""
    try:
        return await messages.set_read(message_id, reader_id=current_user)
    except ChatError as exc:
        raise http_error(exc) from exc
