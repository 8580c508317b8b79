#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from enum import StrEnum, auto
from typing import NamedTuple


class ErrorKind(StrEnum):
    VALIDATION = auto()
    CONFLICT = auto()
    NOT_FOUND = auto()
    BUSY = auto()
    NETWORK = auto()
    TIMEOUT = auto()
    INTERNAL = auto()
    UNAUTHORIZED = auto()


class FieldError(NamedTuple):
    """A single failing field of a record.

    Parameters
    ----------
    field
        Canonical (snake_case) field name.
    message
        Human-readable reason.
    """

    field: str
    message: str


class RoomboardError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL


class ParseError(RoomboardError, ValueError):
    kind = ErrorKind.VALIDATION


class UnknownRoomError(RoomboardError, LookupError):
    kind = ErrorKind.VALIDATION

    def __init__(self, raw: str, suggestion: str | None = None):
        self.raw = raw
        self.suggestion = suggestion
        message = f"Unknown room {raw!r}"
        if suggestion is not None:
            message += f", did you mean {suggestion!r}?"
        super().__init__(message)


class RecordValidationError(RoomboardError, ValueError):
    """Raised when a raw record cannot be normalised. Lists every failing field."""

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[FieldError], record_id: str | None = None):
        self.errors = errors
        self.record_id = record_id
        details = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Invalid meeting record ({details})")

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]


class BookingValidationError(RoomboardError, ValueError):
    kind = ErrorKind.VALIDATION

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class ConflictError(RoomboardError):
    kind = ErrorKind.CONFLICT

    def __init__(self, conflicting_ids: list[str], message: str | None = None):
        self.conflicting_ids = conflicting_ids
        super().__init__(
            message or f"Time slot conflicts with meeting(s) {', '.join(conflicting_ids)}"
        )


class DuplicateIdError(RoomboardError):
    kind = ErrorKind.CONFLICT

    def __init__(self, meeting_id: str):
        self.conflicting_ids = [meeting_id]
        super().__init__(f"A meeting with id {meeting_id!r} already exists")


class EndedMeetingError(RoomboardError):
    """Raised when the time fields of an ended meeting are edited."""

    kind = ErrorKind.VALIDATION


class NotFoundError(RoomboardError, KeyError):
    kind = ErrorKind.NOT_FOUND

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Not found"


class BusyError(RoomboardError):
    kind = ErrorKind.BUSY


class NetworkError(RoomboardError):
    kind = ErrorKind.NETWORK


class PersistenceTimeoutError(NetworkError):
    kind = ErrorKind.TIMEOUT


class AuthenticationError(RoomboardError):
    kind = ErrorKind.UNAUTHORIZED


class LockedOutError(AuthenticationError):
    def __init__(self, remaining_seconds: float):
        self.remaining_seconds = remaining_seconds
        minutes = max(1, round(remaining_seconds / 60))
        super().__init__(f"Too many failed attempts, try again in {minutes} minute(s)")


class InternalError(RoomboardError):
    kind = ErrorKind.INTERNAL


class RemoteError(InternalError):
    """The record server rejected a request for a reason with no dedicated kind."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
