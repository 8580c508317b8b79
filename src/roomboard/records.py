#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The canonical meeting record and the normaliser that builds it from
heterogeneous inputs (spreadsheet rows, API payloads, booking forms)."""

import datetime
import logging
import uuid
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer, model_validator
from pydantic.alias_generators import to_camel

from roomboard.aliases import MeetingId, RoomKey
from roomboard.constants import DEFAULT_TZ_OFFSET_HOURS, SPREADSHEET_COLUMNS
from roomboard.exceptions import FieldError, ParseError, RecordValidationError
from roomboard.rooms import RoomRegistry, normalise_name
from roomboard.time_utils import (
    TimeInterval,
    day_of_week_code,
    format_date,
    format_duration,
    format_time,
    minute_of_day,
    parse_date,
    parse_time,
    to_time,
)

logger = logging.getLogger(__name__)


class Purpose(StrEnum):
    MEETING = "Họp"
    TRAINING = "Đào tạo"
    INTERVIEW = "Phỏng vấn"
    DISCUSSION = "Thảo luận"
    REPORT = "Báo cáo"
    OTHER = "Khác"


# checked in order, the first keyword found in the text wins
PURPOSE_KEYWORDS: list[tuple[str, Purpose]] = [
    ("họp", Purpose.MEETING),
    ("đào tạo", Purpose.TRAINING),
    ("pv", Purpose.INTERVIEW),
    ("phỏng vấn", Purpose.INTERVIEW),
    ("thảo luận", Purpose.DISCUSSION),
    ("báo cáo", Purpose.REPORT),
]


def classify_purpose(text: str | None) -> Purpose:
    """Classify free text into a meeting purpose using keyword rules."""
    if not text:
        return Purpose.OTHER
    normalised = normalise_name(text)
    for keyword, purpose in PURPOSE_KEYWORDS:
        if keyword in normalised:
            return purpose
    return Purpose.OTHER


def parse_purpose(value: Any) -> Purpose | None:
    """Match an explicit purpose value case-insensitively, or return `None`."""
    if isinstance(value, Purpose):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    target = normalise_name(value)
    for purpose in Purpose:
        if normalise_name(purpose.value) == target or purpose.name.casefold() == target:
            return purpose
    return None


def new_meeting_id() -> MeetingId:
    return f"meeting_{uuid.uuid4().hex}"


class Meeting(BaseModel):
    """A canonical meeting record.

    Parameters
    ----------
    id
        Opaque identifier, unique within a store.
    room
        Registry key of the room.
    date
        The day the meeting takes place on.
    start_time, end_time
        Local times of day, with ``start_time < end_time``. Both lie in the
        same day, so meetings spanning midnight cannot be represented.
    purpose
        One of the `Purpose` values.
    title
        A non-empty title.
    content, description
        Free text.
    department, organizer
        Optional free text.
    is_ended
        Set once the meeting is known to be over.
    force_ended_by_user
        Set when a user terminated the meeting before its scheduled end.
    ended_at
        Local time at which a user force-ended the meeting.
    updated_at
        Stamp of the last mutation, strictly increasing within a store.

    Notes
    -----
    Serialising with ``mode="json"`` and ``by_alias=True`` gives the camelCase,
    ``DD/MM/YYYY`` / ``HH:MM`` wire format used by the record server.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    id: MeetingId
    room: RoomKey
    date: datetime.date
    start_time: datetime.time
    end_time: datetime.time
    purpose: Purpose = Purpose.OTHER
    title: str
    content: str = ""
    description: str = ""
    department: str | None = None
    organizer: str | None = None
    is_ended: bool = False
    force_ended_by_user: bool = False
    ended_at: datetime.time | None = None
    updated_at: datetime.datetime

    @model_validator(mode="after")
    def check_structure(self) -> "Meeting":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be earlier than end_time")
        if not self.title.strip():
            raise ValueError("title must not be empty")
        return self

    @field_serializer("date", when_used="json")
    def serialise_date(self, value: datetime.date) -> str:
        return format_date(value)

    @field_serializer("start_time", "end_time", "ended_at", when_used="json")
    def serialise_time(self, value: datetime.time | None) -> str | None:
        if value is None:
            return None
        return format_time(minute_of_day(value))

    @property
    def start_minutes(self) -> int:
        return minute_of_day(self.start_time)

    @property
    def end_minutes(self) -> int:
        return minute_of_day(self.end_time)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start_minutes, self.end_minutes)

    @property
    def duration(self) -> int:
        return self.interval.duration

    @property
    def is_closed(self) -> bool:
        """Ended or force-ended, i.e. excluded from conflicts and room status."""
        return self.is_ended or self.force_ended_by_user

    def to_payload(self, include_id: bool = True) -> dict[str, Any]:
        """The camelCase wire representation, with the derived ``dayOfWeek`` and
        ``duration`` fields."""
        payload = self.model_dump(mode="json", by_alias=True)
        payload["dayOfWeek"] = day_of_week_code(self.date)
        payload["duration"] = format_duration(self.duration)
        if not include_id:
            del payload["id"]
        return payload


# accepted spellings of each canonical field, compared after `normalise_name`
_FIELD_SPELLINGS: dict[str, list[str]] = {
    "id": ["id", "_id"],
    "room": ["room"],
    "date": ["date"],
    "start_time": ["start_time", "startTime", "start"],
    "end_time": ["end_time", "endTime", "end"],
    "purpose": ["purpose"],
    "title": ["title"],
    "content": ["content"],
    "description": ["description"],
    "department": ["department"],
    "organizer": ["organizer"],
    "is_ended": ["is_ended", "isEnded"],
    "force_ended_by_user": ["force_ended_by_user", "forceEndedByUser"],
    "ended_at": ["ended_at", "endedAt"],
}
_CAMEL_TO_FIELD = {
    "date": "date",
    "room": "room",
    "startTime": "start_time",
    "endTime": "end_time",
    "content": "content",
}
for _header, _camel in SPREADSHEET_COLUMNS.items():
    if _camel in _CAMEL_TO_FIELD:
        _FIELD_SPELLINGS[_CAMEL_TO_FIELD[_camel]].append(_header)

_KEY_LOOKUP = {
    normalise_name(spelling): field
    for field, spellings in _FIELD_SPELLINGS.items()
    for spelling in spellings
}


def canonical_keys(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Rename the keys of a raw record to canonical field names. Unknown keys are
    dropped, and the first spelling seen wins when a field is given twice."""
    fields: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str):
            continue
        field = _KEY_LOOKUP.get(normalise_name(key))
        if field is not None and field not in fields:
            fields[field] = value
    return fields


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(value: Any) -> str:
    return "" if _is_blank(value) else str(value).strip()


def _optional_text(value: Any) -> str | None:
    return _text(value) or None


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().casefold() in {"true", "1", "yes"}
    return bool(value)


def normalise_record(
    raw: Mapping[str, Any] | Meeting,
    registry: RoomRegistry,
    *,
    now: datetime.datetime | None = None,
    tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
    id_factory: Callable[[], MeetingId] = new_meeting_id,
) -> Meeting:
    """Build a canonical `Meeting` from a raw record.

    Parameters
    ----------
    raw
        A mapping using camelCase, snake_case or spreadsheet column names, or an
        existing `Meeting` (which is re-validated against `registry`).
    registry
        Used to resolve the room name to a registry key.
    now
        Value of ``updated_at``. Defaults to the current UTC time.
    tz_offset_hours
        Offset used to read the local calendar day of ISO instants.
    id_factory
        Called to assign an id when the record does not carry one.

    Raises
    ------
    RecordValidationError
        Listing every field that failed, not only the first one.
    """
    if isinstance(raw, Meeting):
        raw = raw.model_dump()
    fields = canonical_keys(raw)
    errors: list[FieldError] = []

    room = None
    if _is_blank(fields.get("room")):
        errors.append(FieldError("room", "is required"))
    else:
        room = registry.match(str(fields["room"]))
        if room is None:
            suggestion = registry.suggest(str(fields["room"]))
            hint = f", did you mean {suggestion!r}?" if suggestion else ""
            errors.append(FieldError("room", f"unknown room {fields['room']!r}{hint}"))

    date = None
    if _is_blank(fields.get("date")):
        errors.append(FieldError("date", "is required"))
    else:
        try:
            date = parse_date(fields["date"], tz_offset_hours)
        except ParseError as e:
            errors.append(FieldError("date", str(e)))

    times: dict[str, int] = {}
    for field in ("start_time", "end_time"):
        if _is_blank(fields.get(field)):
            errors.append(FieldError(field, "is required"))
            continue
        try:
            times[field] = parse_time(fields[field])
        except ParseError as e:
            errors.append(FieldError(field, str(e)))
    if len(times) == 2 and times["start_time"] >= times["end_time"]:
        errors.append(FieldError("end_time", "must be later than the start time"))

    ended_at = None
    if not _is_blank(fields.get("ended_at")):
        try:
            ended_at = to_time(parse_time(fields["ended_at"]))
        except ParseError as e:
            errors.append(FieldError("ended_at", str(e)))

    content = _text(fields.get("content"))
    title = _text(fields.get("title"))
    if not title and content:
        title = content.splitlines()[0].strip()
    if not title:
        errors.append(FieldError("title", "is required"))

    record_id = _text(fields.get("id")) or None
    if errors:
        raise RecordValidationError(errors, record_id)

    purpose = parse_purpose(fields.get("purpose"))
    if purpose is None:
        purpose = classify_purpose(
            " ".join([_text(fields.get("purpose")), title, content])
        )
    return Meeting(
        id=record_id or id_factory(),
        room=room,
        date=date,
        start_time=to_time(times["start_time"]),
        end_time=to_time(times["end_time"]),
        purpose=purpose,
        title=title,
        content=content,
        description=_text(fields.get("description")),
        department=_optional_text(fields.get("department")),
        organizer=_optional_text(fields.get("organizer")),
        is_ended=_flag(fields.get("is_ended")),
        force_ended_by_user=_flag(fields.get("force_ended_by_user")),
        ended_at=ended_at,
        updated_at=now or datetime.datetime.now(datetime.timezone.utc),
    )
