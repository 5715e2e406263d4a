"""
tally.errors — Error Taxonomy
==============================

Every failure a caller can see belongs to exactly one *kind*, and each
carries a stable machine ``code`` plus a human message:

==================  ======================================  ==========
kind                codes                                   HTTP
==================  ======================================  ==========
validation          InvalidAmount, InvalidGoal, …           422
state_conflict      AlreadyJoined, NotCheckedIn, …          409
authorization       Forbidden, Unauthenticated              403 / 401
not_found           InvalidInviteCode, NotAMember, …        404
backend_unavailable BackendUnavailable                      503
==================  ======================================  ==========

Services raise these internally; :func:`tally.services.result.as_result`
turns them into ``OpResult(None, error)`` at the operation boundary, so
nothing in this module is ever raised at a caller.
"""

from __future__ import annotations

import enum
from typing import ClassVar


class ErrorCode(enum.StrEnum):
    """Stable machine-readable error codes."""
    # validation
    INVALID_AMOUNT = "InvalidAmount"
    INVALID_REASON = "InvalidReason"
    INVALID_GOAL = "InvalidGoal"
    INVALID_NAME = "InvalidName"
    INVALID_DESCRIPTION = "InvalidDescription"
    INVALID_EVENT = "InvalidEvent"
    INVALID_QR_PAYLOAD = "InvalidQRPayload"
    CANNOT_REMOVE_SELF = "CannotRemoveSelf"
    INVALID_INPUT = "InvalidInput"
    # state_conflict
    ALREADY_JOINED = "AlreadyJoined"
    NOT_JOINED = "NotJoined"
    ALREADY_CHECKED_IN = "AlreadyCheckedIn"
    NOT_CHECKED_IN = "NotCheckedIn"
    ALREADY_CHECKED_OUT = "AlreadyCheckedOut"
    ALREADY_MEMBER = "AlreadyMember"
    EVENT_FULL = "EventFull"
    LAST_ADMIN = "LastAdmin"
    # authorization
    FORBIDDEN = "Forbidden"
    UNAUTHENTICATED = "Unauthenticated"
    # not_found
    INVALID_INVITE_CODE = "InvalidInviteCode"
    NOT_A_MEMBER = "NotAMember"
    EVENT_NOT_FOUND = "EventNotFound"
    GROUP_NOT_FOUND = "GroupNotFound"
    PROFILE_NOT_FOUND = "ProfileNotFound"
    # backend
    BACKEND_UNAVAILABLE = "BackendUnavailable"


DEFAULT_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_AMOUNT: "Point amount is not valid for this reason.",
    ErrorCode.INVALID_REASON: "Unknown ledger reason.",
    ErrorCode.INVALID_GOAL: "Monthly goal must be a positive whole number.",
    ErrorCode.INVALID_NAME: "Name must not be blank.",
    ErrorCode.INVALID_DESCRIPTION: "Description must not be blank.",
    ErrorCode.INVALID_EVENT: "Event details are not valid.",
    ErrorCode.INVALID_QR_PAYLOAD: "This QR code does not identify an event.",
    ErrorCode.CANNOT_REMOVE_SELF: "Admins leave a group instead of removing themselves.",
    ErrorCode.INVALID_INPUT: "A value is too long or has the wrong type.",
    ErrorCode.ALREADY_JOINED: "You have already joined this event.",
    ErrorCode.NOT_JOINED: "You have not joined this event.",
    ErrorCode.ALREADY_CHECKED_IN: "You are already checked in.",
    ErrorCode.NOT_CHECKED_IN: "You have not checked in yet.",
    ErrorCode.ALREADY_CHECKED_OUT: "You have already checked out.",
    ErrorCode.ALREADY_MEMBER: "You are already a member of this group.",
    ErrorCode.EVENT_FULL: "This event has no spots left.",
    ErrorCode.LAST_ADMIN: "The last admin cannot leave while other members remain.",
    ErrorCode.FORBIDDEN: "You are not allowed to do this.",
    ErrorCode.UNAUTHENTICATED: "You need to sign in first.",
    ErrorCode.INVALID_INVITE_CODE: "No group matches this invite code.",
    ErrorCode.NOT_A_MEMBER: "That user is not a member of this group.",
    ErrorCode.EVENT_NOT_FOUND: "Event not found.",
    ErrorCode.GROUP_NOT_FOUND: "Group not found.",
    ErrorCode.PROFILE_NOT_FOUND: "Profile not found.",
    ErrorCode.BACKEND_UNAVAILABLE: "The service is temporarily unavailable. Please retry.",
}


class TallyError(Exception):
    """Base class for every error returned by the core."""

    kind: ClassVar[str] = "error"

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or DEFAULT_MESSAGES.get(code, str(code))
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "code": str(self.code), "message": self.message}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code!s}>"


class ValidationError(TallyError):
    """Malformed input (zero amount, blank name, non-positive goal …)."""
    kind = "validation"


class StateConflict(TallyError):
    """A transition attempted from the wrong state — "you already did this"."""
    kind = "state_conflict"


class AuthorizationError(TallyError):
    """The acting user lacks the required role, or is not signed in."""
    kind = "authorization"


class NotFoundError(TallyError):
    """The referenced event, group, membership or invite code does not exist."""
    kind = "not_found"


class BackendUnavailable(TallyError):
    """The record store timed out or the transport failed."""
    kind = "backend_unavailable"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(ErrorCode.BACKEND_UNAVAILABLE, message)
