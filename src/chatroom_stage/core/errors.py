"""Error taxonomy shared by the messaging adapters and the conversation engine."""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ChatError(RuntimeError):
    """Base exception for every failure surfaced by the messaging core.

    The string form of the exception is the user-facing message.
    """


class ValidationError(ChatError):
    """Raised when a request is malformed, e.g. an empty message with no attachment."""


class AuthorizationError(ChatError):
    """Raised when the requester may not perform the operation."""


class NotFoundError(ChatError):
    """Raised when a room, message or attachment no longer exists."""


class NetworkError(ChatError):
    """Raised when the document or object store cannot be reached."""


class RateLimitError(ChatError):
    """Raised when a caller exceeds a request budget."""


def normalize_error(error: BaseException, fallback: str = "Something went wrong.") -> ChatError:
    """Map any lower-level failure onto the chat error taxonomy.

    Args:
        error: The exception raised by a store, driver or filesystem call.
        fallback: Message used when the error carries no usable text.

    Returns:
        A ``ChatError`` instance; taxonomy members are returned unchanged.
    """
    if isinstance(error, ChatError):
        return error
    if isinstance(error, SQLAlchemyError):
        logger.warning("Document store failure: %s", error)
        return NetworkError(fallback)
    if isinstance(error, (ConnectionError, TimeoutError)):
        logger.warning("Transport failure: %s", error)
        return NetworkError("Please check your internet connection")
    if isinstance(error, OSError):
        logger.warning("Object store failure: %s", error)
        return NetworkError(fallback)
    message = str(error).strip()
    return ChatError(message or fallback)


def error_message(error: BaseException, fallback: str = "Something went wrong.") -> str:
    """Return the user-facing message for ``error``."""
    return str(normalize_error(error, fallback)) or fallback


P = ParamSpec("P")
R = TypeVar("R")


def translate_errors(
    fallback: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorate an adapter coroutine so store failures surface as ``ChatError``.

    The wrapped method's instance is expected to carry its SQLAlchemy session
    as ``db``; the session is rolled back before the error is re-raised.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await func(*args, **kwargs)
            except ChatError:
                raise
            except (SQLAlchemyError, OSError) as exc:
                db: Any = getattr(args[0], "db", None) if args else None
                if db is not None:
                    db.rollback()
                raise normalize_error(exc, fallback) from exc

        return wrapper

    return decorator
