# src/chatroom_stage/api/v1/endpoints/rooms.py
"""Chat room endpoints for the Chatroom API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Response, status

from chatroom_stage.core.errors import ChatError
from chatroom_stage.schemas.chat_room import (
    ChatRoomList,
    ChatRoomRecord,
    ChatRoomResolveRequest,
    ChatRoomResolveResponse,
)
from chatroom_stage.schemas.common import StatusResponse, UnreadCountResponse

from ..dependencies import (
    CurrentUserDep,
    MessagesDep,
    RoomsDep,
    http_error,
    require_room_member,
)

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("", response_model=ChatRoomResolveResponse)
async def resolve_room(
    payload: ChatRoomResolveRequest,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    response: Response,
) -> ChatRoomResolveResponse:
    """Open the conversation with another user, creating the room on first contact."""
    try:
        room, is_new = await rooms.resolve_room(current_user, payload.other_user_id)
    except ChatError as exc:
        raise http_error(exc) from exc

    if is_new:
        response.status_code = status.HTTP_201_CREATED
    return ChatRoomResolveResponse(room=room, is_new=is_new)


@router.get("", response_model=ChatRoomList)
async def list_rooms(
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> ChatRoomList:
    """List the caller's rooms, most recent activity first."""
    try:
        return await rooms.list_rooms(current_user, limit=limit, offset=offset)
    except ChatError as exc:
        raise http_error(exc) from exc


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_total(current_user: CurrentUserDep, rooms: RoomsDep) -> UnreadCountResponse:
    """Return the caller's unread total for the badge."""
    try:
        count = await rooms.get_unread_total(current_user)
    except ChatError as exc:
        raise http_error(exc) from exc
    return UnreadCountResponse(count=count)


@router.get("/with/{other_user_id}", response_model=ChatRoomRecord)
async def find_room(other_user_id: str, current_user: CurrentUserDep, rooms: RoomsDep) -> ChatRoomRecord:
    """Return the existing room shared with another user without creating one."""
    try:
        room = await rooms.find_room(current_user, other_user_id)
    except ChatError as exc:
        raise http_error(exc) from exc
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat room not found")
    return room


@router.get("/{room_id}", response_model=ChatRoomRecord)
async def get_room(room_id: str, current_user: CurrentUserDep, rooms: RoomsDep) -> ChatRoomRecord:
    """Fetch a room the caller participates in."""
    return await require_room_member(rooms, room_id, current_user)


@router.delete("/{room_id}", response_model=StatusResponse)
async def delete_room(room_id: str, current_user: CurrentUserDep, rooms: RoomsDep) -> StatusResponse:
    """Delete a room together with its message history."""
    try:
        await rooms.delete_room(room_id, current_user)
    except ChatError as exc:
        raise http_error(exc) from exc
    return StatusResponse(status="deleted")


@router.post("/{room_id}/read", response_model=ChatRoomRecord)
async def mark_room_read(
    room_id: str,
    current_user: CurrentUserDep,
    rooms: RoomsDep,
    messages: MessagesDep,
) -> ChatRoomRecord:
    """Mark the other participant's messages read and zero the caller's counter."""
    await require_room_member(rooms, room_id, current_user)
    try:
        await messages.mark_all_read(room_id, current_user)
        return await rooms.mark_read(room_id, current_user)
    except ChatError as exc:
        raise http_error(exc) from exc
