#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""In-memory meeting store backed by a polars DataFrame.

The store is the only place where meeting records are mutated. Every commit
re-checks the record invariants, bumps the store revision and is then
announced to subscribers, in commit order."""

from __future__ import annotations

import contextlib
import datetime
import logging
import threading
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

import polars as pl

from roomboard.aliases import MeetingId, RoomKey
from roomboard.constants import DEFAULT_TZ_OFFSET_HOURS
from roomboard.events import (
    EventBus,
    Listener,
    StoreDeleted,
    StoreEvent,
    StoreInserted,
    StoreReplaced,
    StoreUpdated,
    Unsubscribe,
)
from roomboard.exceptions import (
    BusyError,
    ConflictError,
    DuplicateIdError,
    EndedMeetingError,
    FieldError,
    NotFoundError,
    ParseError,
    RecordValidationError,
)
from roomboard.records import Meeting, canonical_keys, normalise_record
from roomboard.rooms import RoomRegistry
from roomboard.schemas import MEETING_SCHEMA, SORT_COLUMNS
from roomboard.time_utils import (
    Clock,
    Instant,
    in_range,
    parse_date,
    parse_time,
    system_clock,
    to_time,
)

logger = logging.getLogger(__name__)

RawOrMeeting = Mapping[str, Any] | Meeting

_ONE_TICK = datetime.timedelta(microseconds=1)


def _utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def find_overlaps(meetings: Iterable[Meeting]) -> list[tuple[Meeting, Meeting]]:
    """Pairs of open meetings sharing a room and a date whose intervals intersect."""
    groups: dict[tuple, list[Meeting]] = defaultdict(list)
    for meeting in meetings:
        if not meeting.is_closed:
            groups[(meeting.room, meeting.date)].append(meeting)
    overlapping = []
    for group in groups.values():
        group.sort(key=lambda m: (m.start_minutes, m.id))
        latest_end = None
        for meeting in group:
            if latest_end is not None and meeting.start_minutes < latest_end.end_minutes:
                overlapping.append((latest_end, meeting))
            if latest_end is None or meeting.end_minutes > latest_end.end_minutes:
                latest_end = meeting
    return overlapping


def ended_copy(
    meeting: Meeting, now: Instant, stamp: datetime.datetime | None = None
) -> Meeting:
    """The record `meeting` becomes once ended at `now`.

    A meeting whose end time has already passed is only flagged as ended. Any
    other one is also marked as force-ended by the user, keeping the local time
    it was stopped at in ``ended_at``.
    """
    already_over = meeting.date < now.date or (
        meeting.date == now.date and meeting.end_minutes <= now.minutes
    )
    update: dict[str, Any] = {"is_ended": True}
    if stamp is not None:
        update["updated_at"] = stamp
    if not already_over:
        update["force_ended_by_user"] = True
        update["ended_at"] = to_time(now.minutes)
    return meeting.model_copy(update=update)


class MeetingStore:
    """Indexed collection of canonical meetings.

    Parameters
    ----------
    registry
        Rooms records are resolved against.
    clock
        Source of the ``updated_at`` stamps.
    tz_offset_hours
        Offset used when normalising ISO instants to calendar days.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        clock: Clock = system_clock,
        tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
    ):
        self.registry = registry
        self._clock = clock
        self._tz_offset_hours = tz_offset_hours
        self._frame = pl.DataFrame(schema=MEETING_SCHEMA)
        self._lock = threading.Lock()
        self._notifying = False
        self._revision = 0
        self._last_stamp: datetime.datetime | None = None
        self._events: EventBus[StoreEvent] = EventBus("store")

    def __len__(self) -> int:
        return self._frame.height

    def __contains__(self, meeting_id: object) -> bool:
        return bool(self._frame.filter(pl.col("id") == meeting_id).height)

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def frame(self) -> pl.DataFrame:
        """A sorted copy of the underlying table."""
        return self._frame.sort(SORT_COLUMNS)

    def subscribe(self, listener: Listener[StoreEvent]) -> Unsubscribe:
        """Register `listener` to be called after every commit. Returns a
        callable which removes it."""
        return self._events.subscribe(listener)

    # reads

    @staticmethod
    def _to_meetings(frame: pl.DataFrame) -> list[Meeting]:
        return [Meeting.model_validate(row) for row in frame.to_dicts()]

    def get(self, meeting_id: MeetingId) -> Meeting:
        rows = self._frame.filter(pl.col("id") == meeting_id)
        if rows.is_empty():
            raise NotFoundError(f"Meeting {meeting_id!r} not found")
        return self._to_meetings(rows)[0]

    def list(
        self, room: str | None = None, date: datetime.date | None = None
    ) -> list[Meeting]:
        """Meetings ordered by (date, start time, id), optionally narrowed to one
        room (any name the registry can match) and one day."""
        frame = self._frame
        if room is not None:
            key = self.registry.match(room)
            if key is None:
                return []
            frame = frame.filter(pl.col("room") == key)
        if date is not None:
            frame = frame.filter(pl.col("date") == date)
        return self._to_meetings(frame.sort(SORT_COLUMNS))

    def snapshot(self) -> tuple[Meeting, ...]:
        return tuple(self.list())

    def rooms_in_use(self) -> list[RoomKey]:
        return self._frame.get_column("room").unique(maintain_order=True).to_list()

    def find_conflicts(
        self,
        room: RoomKey,
        date: datetime.date,
        start: datetime.time,
        end: datetime.time,
        exclude_id: MeetingId | None = None,
    ) -> list[MeetingId]:
        """Ids of the open meetings of `room` on `date` overlapping ``[start, end)``."""
        predicate = (
            (pl.col("room") == room)
            & (pl.col("date") == date)
            & ~pl.col("is_ended")
            & ~pl.col("force_ended_by_user")
            & (pl.col("start_time") < end)
            & (pl.col("end_time") > start)
        )
        if exclude_id is not None:
            predicate = predicate & (pl.col("id") != exclude_id)
        conflicts = self._frame.filter(predicate).sort(SORT_COLUMNS)
        return conflicts.get_column("id").to_list()

    def running_meeting(self, room: str, instant: Instant) -> Meeting | None:
        """The open meeting of `room` whose window contains `instant`, if any."""
        for meeting in self.list(room=room, date=instant.date):
            if not meeting.is_closed and in_range(
                instant.minutes, meeting.start_minutes, meeting.end_minutes
            ):
                return meeting
        return None

    # writes

    def _stamp(self) -> datetime.datetime:
        now = _utc(self._clock())
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + _ONE_TICK
        self._last_stamp = now
        return now

    def _normalise(self, record: RawOrMeeting, now: datetime.datetime) -> Meeting:
        return normalise_record(
            record, self.registry, now=now, tz_offset_hours=self._tz_offset_hours
        )

    @staticmethod
    def _rows(meetings: Iterable[Meeting]) -> pl.DataFrame:
        rows = [{**m.model_dump(), "purpose": m.purpose.value} for m in meetings]
        return pl.DataFrame(rows, schema=MEETING_SCHEMA)

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[None]:
        if self._notifying:
            raise BusyError("The meeting store cannot be mutated by one of its listeners")
        with self._lock:
            yield

    def _publish(self, event: StoreEvent) -> None:
        self._notifying = True
        try:
            self._events.publish(event)
        finally:
            self._notifying = False

    def _slot_conflicts(self, record: RawOrMeeting) -> list[MeetingId]:
        """Conflicts of a record that failed normalisation, when at least its room,
        date and times can be read."""
        if isinstance(record, Meeting):
            return []
        fields = canonical_keys(record)
        room = self.registry.match(str(fields.get("room") or ""))
        if room is None:
            return []
        try:
            date = parse_date(fields.get("date"), self._tz_offset_hours)
            start = parse_time(fields.get("start_time"))
            end = parse_time(fields.get("end_time"))
        except ParseError:
            return []
        if start >= end:
            return []
        return self.find_conflicts(room, date, to_time(start), to_time(end))

    def _check_open_conflicts(self, meeting: Meeting, exclude_id: MeetingId | None) -> None:
        if meeting.is_closed:
            return
        conflicts = self.find_conflicts(
            meeting.room, meeting.date, meeting.start_time, meeting.end_time, exclude_id
        )
        if conflicts:
            raise ConflictError(conflicts)

    def load_all(self, records: Iterable[RawOrMeeting]) -> int:
        """Atomically replace the store contents.

        Raises
        ------
        RecordValidationError
            If any record fails normalisation. Field names are prefixed with the
            index of the offending record.
        DuplicateIdError
            If two records share an id.
        ConflictError
            If two open meetings of the same room overlap.
        """
        with self._transaction():
            now = self._stamp()
            meetings, errors = [], []
            for index, record in enumerate(records):
                try:
                    meetings.append(self._normalise(record, now))
                except RecordValidationError as e:
                    errors.extend(
                        FieldError(f"[{index}].{error.field}", error.message)
                        for error in e.errors
                    )
            if errors:
                raise RecordValidationError(errors)
            seen: set[MeetingId] = set()
            for meeting in meetings:
                if meeting.id in seen:
                    raise DuplicateIdError(meeting.id)
                seen.add(meeting.id)
            overlapping = find_overlaps(meetings)
            if overlapping:
                first, second = overlapping[0]
                raise ConflictError([first.id, second.id])
            self._frame = self._rows(meetings)
            self._revision += 1
            event = StoreReplaced(revision=self._revision, count=len(meetings))
        logger.info(f"Loaded {len(meetings)} meeting(s) into the store")
        self._publish(event)
        return len(meetings)

    def insert(self, record: RawOrMeeting) -> Meeting:
        """Add a new meeting.

        A record whose room and time slot clash with an open meeting is rejected
        with `ConflictError` even when its other fields are invalid.

        Raises
        ------
        DuplicateIdError
            If a meeting already has the record's id.
        ConflictError
            If the interval overlaps another open meeting of the room.
        RecordValidationError
            If the record cannot be normalised.
        """
        with self._transaction():
            try:
                meeting = self._normalise(record, self._stamp())
            except RecordValidationError:
                conflicts = self._slot_conflicts(record)
                if conflicts:
                    raise ConflictError(conflicts)
                raise
            if meeting.id in self:
                raise DuplicateIdError(meeting.id)
            self._check_open_conflicts(meeting, exclude_id=None)
            self._frame = self._frame.vstack(self._rows([meeting]))
            self._revision += 1
            event = StoreInserted(revision=self._revision, meeting=meeting)
        logger.debug(f"Inserted meeting {meeting.id} in {meeting.room}")
        self._publish(event)
        return meeting

    def update(self, record: RawOrMeeting) -> Meeting:
        """Replace an existing meeting, matched by id. An ended meeting stays
        ended, whatever flags the record carries.

        Raises
        ------
        NotFoundError
            If no meeting has the record's id.
        EndedMeetingError
            If the meeting is ended and the record changes its date or times.
        ConflictError
            If the new interval overlaps another open meeting of the room.
        """
        with self._transaction():
            meeting = self._normalise(record, self._stamp())
            previous = self.get(meeting.id)
            if previous.is_closed:
                slot = (meeting.date, meeting.start_time, meeting.end_time)
                if slot != (previous.date, previous.start_time, previous.end_time):
                    raise EndedMeetingError(
                        f"Meeting {meeting.id!r} has ended, its date and times cannot change"
                    )
                # an edit never reopens a meeting
                meeting = meeting.model_copy(
                    update={
                        "is_ended": previous.is_ended or meeting.is_ended,
                        "force_ended_by_user": previous.force_ended_by_user
                        or meeting.force_ended_by_user,
                        "ended_at": previous.ended_at or meeting.ended_at,
                    }
                )
            self._check_open_conflicts(meeting, exclude_id=meeting.id)
            self._replace(meeting)
            event = StoreUpdated(
                revision=self._revision, meeting=meeting, previous=previous
            )
        logger.debug(f"Updated meeting {meeting.id}")
        self._publish(event)
        return meeting

    def _replace(self, meeting: Meeting) -> None:
        self._frame = self._frame.filter(pl.col("id") != meeting.id).vstack(
            self._rows([meeting])
        )
        self._revision += 1

    def delete(self, meeting_id: MeetingId) -> Meeting:
        with self._transaction():
            meeting = self.get(meeting_id)
            self._frame = self._frame.filter(pl.col("id") != meeting_id)
            self._revision += 1
            event = StoreDeleted(revision=self._revision, meeting=meeting)
        logger.debug(f"Deleted meeting {meeting_id}")
        self._publish(event)
        return meeting

    def force_end(self, meeting_id: MeetingId, now: Instant) -> Meeting:
        """End a meeting ahead of its schedule.

        See `ended_copy` for the resulting record. Meetings already ended are
        returned unchanged and no event is published.
        """
        with self._transaction():
            previous = self.get(meeting_id)
            if previous.is_closed:
                return previous
            meeting = ended_copy(previous, now, self._stamp())
            self._replace(meeting)
            event = StoreUpdated(
                revision=self._revision, meeting=meeting, previous=previous
            )
        logger.info(f"Meeting {meeting_id} ended at {now}")
        self._publish(event)
        return meeting

    def force_end_room(self, room: str, now: Instant) -> Meeting:
        """Force-end the meeting currently running in `room`.

        Raises
        ------
        NotFoundError
            If no meeting is running in the room at `now`.
        """
        meeting = self.running_meeting(room, now)
        if meeting is None:
            raise NotFoundError(f"No meeting is running in {room!r} at {now}")
        return self.force_end(meeting.id, now)
