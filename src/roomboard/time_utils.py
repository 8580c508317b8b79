#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Temporal primitives shared by every other module: parsing and formatting of
dates (DD/MM/YYYY) and times of day (HH:MM), conversion to a minute-of-day
ordinal, half-open interval arithmetic and the injected wall clock.

All comparisons in the package are performed on `datetime.date` objects and
minute-of-day integers, never on formatted strings."""

import datetime
import re
from collections.abc import Callable
from typing import NamedTuple, Self

from dateutil import parser as dateutil_parser

from roomboard.constants import DEFAULT_TZ_OFFSET_HOURS
from roomboard.exceptions import ParseError

MINUTES_PER_DAY = 24 * 60
SPREADSHEET_EPOCH = datetime.date(1899, 12, 30)
MIN_YEAR, MAX_YEAR = 1900, 2100

Clock = Callable[[], datetime.datetime]
"""Returns the current wall time. Naive values are interpreted as local wall
time, timezone-aware values are converted to the configured offset."""

_TIME_PATTERN = re.compile(
    r"^(?P<hour>\d{1,2})(?P<sep>[:h.]?)(?P<minute>\d{2})(?::(?P<second>\d{2}))?$"
)
_TIME_NOISE = re.compile(r"[^0-9h:.]")
_DMY_SLASH = re.compile(r"^(?P<d>\d{1,2})/(?P<m>\d{1,2})/(?P<y>\d{4})$")
_YMD_DASH = re.compile(r"^(?P<y>\d{4})-(?P<m>\d{1,2})-(?P<d>\d{1,2})$")
_DMY_DASH = re.compile(r"^(?P<d>\d{1,2})-(?P<m>\d{1,2})-(?P<y>\d{4})$")
_SERIAL = re.compile(r"^\d+(\.\d+)?$")


def system_clock() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class FixedClock:
    """A settable clock, used by tests and replays.

    Parameters
    ----------
    now
        The instant returned until the clock is moved.
    """

    def __init__(self, now: datetime.datetime):
        self._now = now

    def __call__(self) -> datetime.datetime:
        return self._now

    def set(self, now: datetime.datetime) -> None:
        self._now = now

    def advance(self, **kwargs) -> datetime.datetime:
        """Move the clock forward by `datetime.timedelta(**kwargs)`."""
        self._now += datetime.timedelta(**kwargs)
        return self._now


def parse_time(value: str | int | float | datetime.time | datetime.datetime) -> int:
    """Convert a time of day to minutes since midnight.

    Accepted formats are ``HH:MM``, ``HHhMM``, ``HH.MM`` and ``HHMM``, optionally
    followed by ``:SS`` (seconds are dropped). Spreadsheet cells holding a
    fraction of a day in ``[0, 1)`` and `datetime.time` / `datetime.datetime`
    objects are also accepted.

    Raises
    ------
    ParseError
        If the value is malformed or out of the ``[00:00, 24:00)`` range.
    """
    if isinstance(value, datetime.datetime):
        return value.hour * 60 + value.minute
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    if isinstance(value, bool):
        raise ParseError(f"Invalid time {value!r}")
    if isinstance(value, (int, float)):
        if 0 <= value < 1:
            minutes = round(value * MINUTES_PER_DAY)
            if minutes >= MINUTES_PER_DAY:
                raise ParseError(f"Time {value!r} is out of range")
            return minutes
        if isinstance(value, float) and not value.is_integer():
            raise ParseError(f"Invalid time {value!r}")
        value = str(int(value))
    if not isinstance(value, str):
        raise ParseError(f"Invalid time {value!r}")
    cleaned = _TIME_NOISE.sub("", value.strip().lower())
    match = _TIME_PATTERN.match(cleaned)
    if match is None:
        raise ParseError(f"Invalid time {value!r}")
    hour, minute = int(match["hour"]), int(match["minute"])
    second = int(match["second"]) if match["second"] else 0
    if hour > 23 or minute > 59 or second > 59:
        raise ParseError(f"Time {value!r} is out of range")
    return hour * 60 + minute


def format_time(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ParseError(f"Minute of day {minutes} is out of range")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def canonical_time(value: str) -> str:
    """The ``HH:MM`` spelling of any accepted time format."""
    return format_time(parse_time(value))


def to_time(minutes: int) -> datetime.time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ParseError(f"Minute of day {minutes} is out of range")
    return datetime.time(minutes // 60, minutes % 60)


def minute_of_day(t: datetime.time) -> int:
    return t.hour * 60 + t.minute


def _checked_date(year: int, month: int, day: int, raw) -> datetime.date:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ParseError(f"Date {raw!r} is outside {MIN_YEAR}-{MAX_YEAR}")
    try:
        return datetime.date(year, month, day)
    except ValueError:
        raise ParseError(f"Invalid date {raw!r}")


def _local_date(
    value: datetime.datetime, tz_offset_hours: float
) -> datetime.date:
    if value.tzinfo is None:
        return value.date()
    tz = datetime.timezone(datetime.timedelta(hours=tz_offset_hours))
    return value.astimezone(tz).date()


def parse_date(
    value: str | int | float | datetime.date | datetime.datetime,
    tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
) -> datetime.date:
    """Parse a calendar day.

    Parameters
    ----------
    value
        One of ``DD/MM/YYYY``, ``YYYY-MM-DD``, ``DD-MM-YYYY``, a spreadsheet
        serial day number (epoch 1899-12-30), an ISO instant or a
        `datetime.date` / `datetime.datetime` object.
    tz_offset_hours
        Offset used to extract the local calendar day from timezone-aware
        instants.

    Raises
    ------
    ParseError
        If the value cannot be read as a date between 1900 and 2100.
    """
    if isinstance(value, datetime.datetime):
        local = _local_date(value, tz_offset_hours)
        return _checked_date(local.year, local.month, local.day, value)
    if isinstance(value, datetime.date):
        return _checked_date(value.year, value.month, value.day, value)
    if isinstance(value, bool):
        raise ParseError(f"Invalid date {value!r}")
    if isinstance(value, (int, float)):
        return _from_serial(float(value), value)
    if not isinstance(value, str):
        raise ParseError(f"Invalid date {value!r}")
    text = value.strip()
    if not text:
        raise ParseError("Date is empty")
    for pattern in (_DMY_SLASH, _YMD_DASH, _DMY_DASH):
        match = pattern.match(text)
        if match is not None:
            return _checked_date(int(match["y"]), int(match["m"]), int(match["d"]), value)
    if _SERIAL.match(text):
        return _from_serial(float(text), value)
    try:
        instant = dateutil_parser.isoparse(text)
    except ValueError:
        raise ParseError(f"Invalid date {value!r}")
    local = _local_date(instant, tz_offset_hours)
    return _checked_date(local.year, local.month, local.day, value)


def _from_serial(serial: float, raw) -> datetime.date:
    if serial < 1:
        raise ParseError(f"Invalid spreadsheet serial date {raw!r}")
    try:
        day = SPREADSHEET_EPOCH + datetime.timedelta(days=int(serial))
    except OverflowError:
        raise ParseError(f"Invalid spreadsheet serial date {raw!r}")
    return _checked_date(day.year, day.month, day.day, raw)


def format_date(day: datetime.date) -> str:
    return day.strftime("%d/%m/%Y")


class Instant(NamedTuple):
    """A local wall time, as seen by the dashboard.

    Parameters
    ----------
    date
        The local calendar day.
    minutes
        Minute of day, in ``[0, 1440)``.
    seconds
        Seconds within the minute.
    """

    date: datetime.date
    minutes: int
    seconds: int = 0

    @classmethod
    def from_datetime(
        cls, value: datetime.datetime, tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS
    ) -> Self:
        if value.tzinfo is not None:
            tz = datetime.timezone(datetime.timedelta(hours=tz_offset_hours))
            value = value.astimezone(tz)
        return cls(
            date=value.date(),
            minutes=value.hour * 60 + value.minute,
            seconds=value.second,
        )

    @classmethod
    def of(cls, date: str | datetime.date, time: str | datetime.time) -> Self:
        """Build an instant from a date and a time of day in any accepted format."""
        return cls(date=parse_date(date), minutes=parse_time(time))

    @property
    def time(self) -> datetime.time:
        return datetime.time(self.minutes // 60, self.minutes % 60, self.seconds)

    def __str__(self) -> str:
        return f"{format_date(self.date)} {format_time(self.minutes)}"


def now_local(
    clock: Clock = system_clock, tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS
) -> Instant:
    """Read the injected clock and return the local instant."""
    return Instant.from_datetime(clock(), tz_offset_hours)


def in_range(t: int, start: int, end: int) -> bool:
    """Whether minute `t` lies in the half-open interval ``[start, end)``."""
    return start <= t < end


def overlaps(start_1: int, end_1: int, start_2: int, end_2: int) -> bool:
    """Whether ``[start_1, end_1)`` and ``[start_2, end_2)`` intersect.
    Adjacent intervals do not overlap."""
    return not (end_1 <= start_2 or end_2 <= start_1)


def duration(start: int, end: int) -> int:
    return end - start


def format_duration(minutes: int) -> str:
    """Format a duration as ``1h30m``, ``1h`` or ``45m``."""
    hours, rest = divmod(minutes, 60)
    if hours and rest:
        return f"{hours}h{rest}m"
    if hours:
        return f"{hours}h"
    return f"{rest}m"


def day_of_week_code(day: datetime.date) -> str:
    """Vietnamese weekday code: ``"2"`` for Monday up to ``"7"``, ``"CN"`` for Sunday."""
    weekday = day.weekday()
    if weekday == 6:
        return "CN"
    return str(weekday + 2)


class TimeInterval(NamedTuple):
    """A half-open ``[start, end)`` interval of minutes of day."""

    start: int
    end: int

    @classmethod
    def of(cls, start: datetime.time, end: datetime.time) -> Self:
        return cls(minute_of_day(start), minute_of_day(end))

    def contains(self, minute: int) -> bool:
        return in_range(minute, self.start, self.end)

    def overlaps(self, other: Self) -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def includes(self, other: Self) -> bool:
        """Check if `other` is included in this time interval."""
        return self.start <= other.start and self.end >= other.end

    @property
    def duration(self) -> int:
        return duration(self.start, self.end)
