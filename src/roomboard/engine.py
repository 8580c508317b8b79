#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The meeting-state engine: a pure function of (meetings, room, instant)
returning whether the room is occupied, has an upcoming reservation today or
is empty."""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from enum import StrEnum, auto

from pydantic import BaseModel, ConfigDict

from roomboard.aliases import RoomKey
from roomboard.records import Meeting
from roomboard.rooms import RoomRegistry
from roomboard.time_utils import Instant, in_range


class RoomStatus(StrEnum):
    OCCUPIED = auto()
    UPCOMING = auto()
    EMPTY = auto()

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS = {
    RoomStatus.OCCUPIED: "Đang họp",
    RoomStatus.UPCOMING: "Sắp họp",
    RoomStatus.EMPTY: "Trống",
}


class MeetingPhase(StrEnum):
    """Where a single meeting stands relative to an instant."""

    SCHEDULED = auto()
    IN_PROGRESS = auto()
    COMPLETED = auto()
    ENDED = auto()
    PAST = auto()
    FUTURE = auto()


class RoomState(BaseModel):
    """The derived state of one room at one instant.

    Parameters
    ----------
    room
        Registry key of the room.
    status
        Occupied, upcoming or empty.
    active
        The running meeting when the room is occupied.
    next
        The earliest meeting of the day that has not started yet.
    at
        The instant the state was computed for.
    """

    model_config = ConfigDict(frozen=True)

    room: RoomKey
    status: RoomStatus
    active: Meeting | None = None
    next: Meeting | None = None
    at: Instant

    @property
    def active_id(self) -> str | None:
        return self.active.id if self.active is not None else None

    @property
    def next_id(self) -> str | None:
        return self.next.id if self.next is not None else None

    def same_as(self, other: "RoomState | None") -> bool:
        """Whether `other` would look the same to a subscriber, ignoring the instant."""
        if other is None:
            return False
        return (
            self.room == other.room
            and self.status == other.status
            and self.active_id == other.active_id
            and self.next_id == other.next_id
        )


def _sort_key(meeting: Meeting) -> tuple:
    return meeting.start_minutes, meeting.id


def is_ended_at(meeting: Meeting, instant: Instant) -> bool:
    """Whether the meeting is over at `instant`, either explicitly flagged or
    because its end time has passed even if the stored flag lags."""
    if meeting.is_closed:
        return True
    if meeting.date != instant.date:
        return meeting.date < instant.date
    return meeting.end_minutes <= instant.minutes


def meeting_phase(meeting: Meeting, instant: Instant) -> MeetingPhase:
    if meeting.is_closed:
        return MeetingPhase.ENDED
    if meeting.date < instant.date:
        return MeetingPhase.PAST
    if meeting.date > instant.date:
        return MeetingPhase.FUTURE
    if in_range(instant.minutes, meeting.start_minutes, meeting.end_minutes):
        return MeetingPhase.IN_PROGRESS
    if instant.minutes < meeting.start_minutes:
        return MeetingPhase.SCHEDULED
    return MeetingPhase.COMPLETED


def _state_of(room: RoomKey, todays: Sequence[Meeting], instant: Instant) -> RoomState:
    """`todays` must be sorted by (start, id) and hold only open meetings of `room`."""
    active = None
    upcoming = None
    for meeting in todays:
        if active is None and in_range(
            instant.minutes, meeting.start_minutes, meeting.end_minutes
        ):
            active = meeting
        elif meeting.start_minutes > instant.minutes:
            upcoming = meeting
            break
    if active is not None:
        return RoomState(
            room=room, status=RoomStatus.OCCUPIED, active=active, next=upcoming, at=instant
        )
    if upcoming is not None:
        return RoomState(room=room, status=RoomStatus.UPCOMING, next=upcoming, at=instant)
    return RoomState(room=room, status=RoomStatus.EMPTY, at=instant)


class StateEngine:
    """Computes room states. Holds the registry used to match room names and
    nothing else, so equal inputs always give equal outputs."""

    def __init__(self, registry: RoomRegistry):
        self._registry = registry

    def _todays(self, meetings: Iterable[Meeting], instant: Instant) -> list[Meeting]:
        return sorted(
            (m for m in meetings if m.date == instant.date and not m.is_closed),
            key=_sort_key,
        )

    def room_state(
        self, meetings: Iterable[Meeting], room: str, instant: Instant
    ) -> RoomState:
        """The state of `room` at `instant`.

        Parameters
        ----------
        meetings
            Canonical meetings, in any order.
        room
            A registry key or any name the registry can match.
        instant
            The local instant to evaluate at.
        """
        key = self._registry.match(room) or room
        todays = [
            m for m in self._todays(meetings, instant) if self._registry.same_room(m.room, key)
        ]
        return _state_of(key, todays, instant)

    def all_room_states(
        self, meetings: Iterable[Meeting], instant: Instant
    ) -> dict[RoomKey, RoomState]:
        """States of every registered room, computed with a single sort and one
        bucketing pass over today's meetings."""
        buckets: dict[RoomKey, list[Meeting]] = defaultdict(list)
        for meeting in self._todays(meetings, instant):
            key = meeting.room
            if key not in self._registry:
                key = self._registry.match(meeting.room)
            if key is not None:
                buckets[key].append(meeting)
        return {
            key: _state_of(key, buckets.get(key, []), instant)
            for key in self._registry.keys
        }
