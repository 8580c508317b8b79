#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The booking workflow: validates prospective meetings, writes them through
the record server and, once the server accepted them, commits them to the
store.

The workflow is a small state machine::

    idle -> validating -> submitting -> idle
                      \\             \\-> failed
                       \\-> failed

and at most one submission can be in flight at any time."""

import asyncio
import datetime
import logging
import re
from collections.abc import Callable
from enum import StrEnum, auto
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from roomboard.aliases import MeetingId
from roomboard.collaborators.auth import PasswordGate
from roomboard.collaborators.persistence import MeetingRepository
from roomboard.constants import (
    DEFAULT_PERSISTENCE_TIMEOUT,
    DEFAULT_TZ_OFFSET_HOURS,
    WORKING_HOURS_END,
    WORKING_HOURS_START,
)
from roomboard.events import EventBus, Notification, NotificationKind
from roomboard.exceptions import (
    BookingValidationError,
    BusyError,
    ConflictError,
    DuplicateIdError,
    EndedMeetingError,
    ErrorKind,
    NetworkError,
    NotFoundError,
    ParseError,
    PersistenceTimeoutError,
    RecordValidationError,
    RoomboardError,
)
from roomboard.records import Meeting, normalise_record, parse_purpose
from roomboard.store import MeetingStore, ended_copy
from roomboard.time_utils import (
    Clock,
    format_date,
    minute_of_day,
    now_local,
    parse_date,
    parse_time,
    system_clock,
    to_time,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIME_FORMAT = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")
REQUIRED_FIELDS = ["room", "date", "start_time", "end_time", "purpose", "title"]


class BookingPhase(StrEnum):
    IDLE = auto()
    VALIDATING = auto()
    SUBMITTING = auto()
    FAILED = auto()


class FailureKind(StrEnum):
    VALIDATION = auto()
    CONFLICTS = auto()
    NOT_FOUND = auto()
    NETWORK = auto()
    OTHER = auto()


class BookingRequest(BaseModel):
    """A booking form, as filled by a user.

    Parameters
    ----------
    meeting_id
        Set when editing an existing meeting, unset when creating one.
    room
        Any room name the registry can match.
    date
        ``DD/MM/YYYY`` (or any other accepted date format) or a `datetime.date`.
    start_time, end_time
        ``HH:MM``.
    """

    meeting_id: MeetingId | None = None
    room: str | None = None
    date: str | datetime.date | None = None
    start_time: str | None = None
    end_time: str | None = None
    purpose: str | None = None
    title: str | None = None
    content: str = ""
    description: str = ""
    department: str | None = None
    organizer: str | None = None

    @classmethod
    def from_meeting(cls, meeting: Meeting, **changes: Any) -> "BookingRequest":
        """A form pre-filled with an existing meeting, to edit it."""
        fields = {
            "meeting_id": meeting.id,
            "room": meeting.room,
            "date": format_date(meeting.date),
            "start_time": meeting.start_time.strftime("%H:%M"),
            "end_time": meeting.end_time.strftime("%H:%M"),
            "purpose": meeting.purpose.value,
            "title": meeting.title,
            "content": meeting.content,
            "description": meeting.description,
            "department": meeting.department,
            "organizer": meeting.organizer,
        }
        fields.update(changes)
        return cls(**fields)


class SubmissionFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    message: str
    field: str | None = None
    conflicting_ids: list[MeetingId] = Field(default_factory=list)


class BookingResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    meeting: Meeting | None = None
    failure: SubmissionFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def classify_failure(error: RoomboardError) -> SubmissionFailure:
    """Map an exception raised while booking onto the failure reported to users."""
    message = str(error)
    if isinstance(error, (ConflictError, DuplicateIdError)):
        return SubmissionFailure(
            kind=FailureKind.CONFLICTS,
            message=message,
            conflicting_ids=error.conflicting_ids,
        )
    if isinstance(error, BookingValidationError):
        return SubmissionFailure(
            kind=FailureKind.VALIDATION, message=message, field=error.field
        )
    if isinstance(error, RecordValidationError):
        return SubmissionFailure(
            kind=FailureKind.VALIDATION, message=message, field=error.fields[0]
        )
    if isinstance(error, EndedMeetingError):
        return SubmissionFailure(kind=FailureKind.VALIDATION, message=message)
    if isinstance(error, NotFoundError):
        return SubmissionFailure(kind=FailureKind.NOT_FOUND, message=message)
    if isinstance(error, PersistenceTimeoutError):
        return SubmissionFailure(
            kind=FailureKind.NETWORK,
            message="The record server did not answer in time, please retry",
        )
    if isinstance(error, NetworkError):
        return SubmissionFailure(
            kind=FailureKind.NETWORK,
            message=f"{message}. Check the connection and retry",
        )
    return SubmissionFailure(kind=FailureKind.OTHER, message=message)


class BookingWorkflow:
    """Validates and submits bookings.

    Parameters
    ----------
    store
        Read for conflict detection, mutated once the server accepted a change.
    persistence
        The record server.
    notifications
        Receives one notification per submission outcome.
    clock
        Injected wall clock, used to end meetings.
    timeout
        Deadline in seconds of a single call to the record server.
    enforce_working_hours
        When set, bookings must lie within `working_hours`.
    working_hours
        ``(start, end)`` local times.
    gate
        When given, editing, cancelling and ending meetings require an open
        password session.
    """

    def __init__(
        self,
        store: MeetingStore,
        persistence: MeetingRepository,
        notifications: EventBus[Notification] | None = None,
        clock: Clock = system_clock,
        timeout: float = DEFAULT_PERSISTENCE_TIMEOUT,
        enforce_working_hours: bool = False,
        working_hours: tuple[datetime.time, datetime.time] = (
            WORKING_HOURS_START,
            WORKING_HOURS_END,
        ),
        gate: PasswordGate | None = None,
        tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
    ):
        self._store = store
        self._persistence = persistence
        self._notifications = notifications
        self._clock = clock
        self.timeout = timeout
        self.enforce_working_hours = enforce_working_hours
        self.working_hours = working_hours
        self._gate = gate
        self._tz_offset_hours = tz_offset_hours
        self._phase = BookingPhase.IDLE
        self.last_failure: SubmissionFailure | None = None

    @property
    def phase(self) -> BookingPhase:
        return self._phase

    @property
    def gate(self) -> PasswordGate | None:
        return self._gate

    @property
    def busy(self) -> bool:
        return self._phase == BookingPhase.SUBMITTING

    def _notify(
        self, kind: NotificationKind, message: str, error_kind: ErrorKind | None = None
    ) -> None:
        if self._notifications is not None:
            self._notifications.publish(
                Notification(kind=kind, message=message, error_kind=error_kind)
            )

    def validate(self, request: BookingRequest) -> Meeting:
        """Check a booking form and return the meeting it describes.

        Rules are checked in order and the first failing one is reported:
        required fields, time format, start before end, working hours (when
        enforced) and finally conflicts with the open meetings of the room.

        Raises
        ------
        BookingValidationError
            Carrying the offending field.
        ConflictError
            Carrying the ids of the overlapping meetings.
        NotFoundError
            When editing a meeting which is not in the store.
        """
        for field in REQUIRED_FIELDS:
            value = getattr(request, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise BookingValidationError(field, "is required")
        for field in ("start_time", "end_time"):
            if not TIME_FORMAT.match(getattr(request, field).strip()):
                raise BookingValidationError(field, "must use the HH:MM format")
        try:
            date = parse_date(request.date, self._tz_offset_hours)
        except ParseError as e:
            raise BookingValidationError("date", str(e))
        room = self._store.registry.match(request.room)
        if room is None:
            raise BookingValidationError("room", f"unknown room {request.room!r}")
        purpose = parse_purpose(request.purpose)
        if purpose is None:
            raise BookingValidationError("purpose", f"unknown purpose {request.purpose!r}")
        start = parse_time(request.start_time.strip())
        end = parse_time(request.end_time.strip())
        if start >= end:
            raise BookingValidationError("end_time", "must be later than the start time")
        if self.enforce_working_hours:
            opening, closing = (minute_of_day(t) for t in self.working_hours)
            if start < opening:
                raise BookingValidationError(
                    "start_time", f"must not be earlier than {self.working_hours[0]:%H:%M}"
                )
            if end > closing:
                raise BookingValidationError(
                    "end_time", f"must not be later than {self.working_hours[1]:%H:%M}"
                )
        previous = None
        if request.meeting_id is not None:
            previous = self._store.get(request.meeting_id)
            if previous.is_ended and (
                previous.date,
                minute_of_day(previous.start_time),
                minute_of_day(previous.end_time),
            ) != (date, start, end):
                raise BookingValidationError(
                    "start_time", "the meeting has ended, its date and times cannot change"
                )
        conflicts = self._store.find_conflicts(
            room, date, to_time(start), to_time(end), exclude_id=request.meeting_id
        )
        if conflicts:
            raise ConflictError(conflicts)
        fields = request.model_dump(exclude={"meeting_id"})
        fields.update(room=room, date=date, purpose=purpose)
        if previous is not None:
            fields.update(
                id=previous.id,
                is_ended=previous.is_ended,
                force_ended_by_user=previous.force_ended_by_user,
                ended_at=previous.ended_at,
            )
        return normalise_record(
            fields,
            self._store.registry,
            now=self._clock(),
            tz_offset_hours=self._tz_offset_hours,
        )

    async def _call(self, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), self.timeout)
        except asyncio.TimeoutError:
            raise PersistenceTimeoutError(
                f"The record server did not answer within {self.timeout}s"
            )

    def _begin(self) -> None:
        if self.busy:
            raise BusyError("Another booking is being submitted")
        self._phase = BookingPhase.VALIDATING

    def _fail(self, error: RoomboardError) -> BookingResult:
        failure = classify_failure(error)
        self._phase = BookingPhase.FAILED
        self.last_failure = failure
        logger.warning(f"Booking failed ({failure.kind}): {failure.message}")
        self._notify(NotificationKind.ERROR, failure.message, error.kind)
        return BookingResult(failure=failure)

    def _succeed(self, meeting: Meeting | None, message: str) -> BookingResult:
        self._phase = BookingPhase.IDLE
        self.last_failure = None
        self._notify(NotificationKind.SUCCESS, message)
        return BookingResult(meeting=meeting)

    def _require_session(self) -> None:
        if self._gate is not None:
            self._gate.require()

    async def submit(self, request: BookingRequest) -> BookingResult:
        """Validate and submit a booking. Creates a meeting when the request
        has no `meeting_id`, updates the meeting otherwise.

        Failures are returned (and notified), never raised, except for
        `BusyError` when another submission is in flight.
        """
        self._begin()
        try:
            if request.meeting_id is not None:
                self._require_session()
            candidate = self.validate(request)
            self._phase = BookingPhase.SUBMITTING
            if request.meeting_id is None:
                response = await self._call(
                    self._persistence.create, candidate.to_payload(include_id=False)
                )
                record = self._merge(candidate, response, keep_id=False)
                if record["id"] in self._store:
                    # already picked up by a sync while the server was answering
                    meeting = self._store.update(record)
                else:
                    meeting = self._store.insert(record)
                return self._succeed(meeting, f"Booked {meeting.title} in {meeting.room}")
            response = await self._call(
                self._persistence.update, candidate.id, candidate.to_payload()
            )
            meeting = self._store.update(self._merge(candidate, response, keep_id=True))
            return self._succeed(meeting, f"Updated {meeting.title}")
        except RoomboardError as e:
            return self._fail(e)
        finally:
            if self._phase in (BookingPhase.VALIDATING, BookingPhase.SUBMITTING):
                self._phase = BookingPhase.FAILED

    @staticmethod
    def _merge(candidate: Meeting, response: Any, keep_id: bool) -> dict[str, Any]:
        """The record to commit: the candidate, overridden by what the server returned."""
        payload = candidate.to_payload()
        if isinstance(response, dict):
            payload.update({k: v for k, v in response.items() if v is not None})
        if keep_id:
            payload["id"] = candidate.id
        return payload

    async def cancel(self, meeting_id: MeetingId) -> BookingResult:
        """Delete a meeting on the server, then from the store."""
        self._begin()
        try:
            self._require_session()
            meeting = self._store.get(meeting_id)
            self._phase = BookingPhase.SUBMITTING
            await self._call(self._persistence.delete, meeting_id)
            self._store.delete(meeting_id)
            return self._succeed(meeting, f"Cancelled {meeting.title}")
        except RoomboardError as e:
            return self._fail(e)
        finally:
            if self._phase in (BookingPhase.VALIDATING, BookingPhase.SUBMITTING):
                self._phase = BookingPhase.FAILED

    async def end_meeting(self, meeting_id: MeetingId) -> BookingResult:
        """Force-end a meeting now, on the server and in the store."""
        self._begin()
        try:
            self._require_session()
            now = now_local(self._clock, self._tz_offset_hours)
            meeting = self._store.get(meeting_id)
            if meeting.is_closed:
                self._phase = BookingPhase.IDLE
                self._notify(NotificationKind.INFO, f"{meeting.title} has already ended")
                return BookingResult(meeting=meeting)
            self._phase = BookingPhase.SUBMITTING
            ended = ended_copy(meeting, now)
            await self._call(self._persistence.update, meeting_id, ended.to_payload())
            meeting = self._store.force_end(meeting_id, now)
            return self._succeed(meeting, f"Ended {meeting.title}")
        except RoomboardError as e:
            return self._fail(e)
        finally:
            if self._phase in (BookingPhase.VALIDATING, BookingPhase.SUBMITTING):
                self._phase = BookingPhase.FAILED

    async def end_room_meeting(self, room: str) -> BookingResult:
        """Force-end whatever meeting is running in `room` now."""
        if self.busy:
            raise BusyError("Another booking is being submitted")
        now = now_local(self._clock, self._tz_offset_hours)
        meeting = self._store.running_meeting(room, now)
        if meeting is None:
            return self._fail(NotFoundError(f"No meeting is running in {room!r}"))
        return await self.end_meeting(meeting.id)
