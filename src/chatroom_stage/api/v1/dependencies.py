"""Shared API dependencies for authentication, adapters and error mapping."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from chatroom_stage.core.errors import (
    AuthorizationError,
    ChatError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from chatroom_stage.core.security import InvalidTokenError, decode_access_token
from chatroom_stage.db.session import get_db
from chatroom_stage.schemas.chat_room import ChatRoomRecord
from chatroom_stage.services.attachments import AttachmentStore
from chatroom_stage.services.messages import MessageStore
from chatroom_stage.services.realtime import EventChannel, get_event_channel
from chatroom_stage.services.rooms import NOT_PARTICIPANT, RoomDirectory

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Return the opaque user ID carried by the bearer token.

    Raises:
        HTTPException: If the token is invalid or expired.
    """
    try:
        return decode_access_token(credentials.credentials)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


def get_event_channel_dep() -> EventChannel:
    """Return the shared push-event channel."""
    return get_event_channel()


# Type alias for current user dependency
CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
ChannelDep = Annotated[EventChannel, Depends(get_event_channel_dep)]


def get_room_directory(db: SessionDep, channel: ChannelDep) -> RoomDirectory:
    return RoomDirectory(db, channel)


RoomsDep = Annotated[RoomDirectory, Depends(get_room_directory)]


def get_message_store(db: SessionDep, channel: ChannelDep, rooms: RoomsDep) -> MessageStore:
    return MessageStore(db, channel, rooms)


def get_attachment_store(db: SessionDep) -> AttachmentStore:
    return AttachmentStore(db)


MessagesDep = Annotated[MessageStore, Depends(get_message_store)]
AttachmentsDep = Annotated[AttachmentStore, Depends(get_attachment_store)]

_STATUS_BY_ERROR: list[tuple[type[ChatError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (RateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
    (NetworkError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_error(error: ChatError) -> HTTPException:
    """Translate a chat error into the HTTP exception returned to clients."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


async def require_room_member(rooms: RoomDirectory, room_id: str, user_id: str) -> ChatRoomRecord:
    """Return the room if ``user_id`` participates in it.

    Raises:
        HTTPException: 404 if the room is missing, 403 if the user is not a participant.
    """
    try:
        room = await rooms.get_room(room_id)
    except ChatError as exc:
        raise http_error(exc) from exc
    if user_id not in room.participants:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_PARTICIPANT)
    return room
