# backend/core/errors.py

from __future__ import annotations

from typing import Optional

# ============================================================================
# ERROR TAXONOMY
# ============================================================================
#
# Every refusal the chat core can produce. The wire contract answers with a
# short plain-text body, and authorization / not-found conditions all share
# status 406 so a client cannot probe which rooms or users exist.


class ChatError(Exception):
    """
    Base class for errors raised by the chat services.

    Attributes:
        status_code: HTTP status the transport answers with
        detail: Plain-text body sent to the client

    The exception message (str(exc)) is meant for the logs and may carry
    more context than ``detail``.
    """

    status_code: int = 406
    detail: str = "unauthorized"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.detail)


class InvalidRequest(ChatError):
    detail = "invalid request"


class RoomNotFound(ChatError):
    pass


class UserNotFound(ChatError):
    pass


class NotMember(ChatError):
    pass


class RoomLocked(ChatError):
    pass


class Unauthorized(ChatError):
    """Lock or unlock attempted by a member who does not hold the lock."""


class GroupChatCannotLock(ChatError):
    detail = "cannot lock a group chatroom"


class UserExists(ChatError):
    status_code = 409
    detail = "user already exists"


class AlreadyMember(ChatError):
    status_code = 409
    detail = "user already in room"


class Superseded(ChatError):
    """A newer receive request from the same user replaced this one."""

    status_code = 409
    detail = "superseded"


class StoreIOError(ChatError):
    status_code = 500
    detail = "Unknown error occurred."
