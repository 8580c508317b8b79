#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Exporting the meetings of a day, a week or a month to a table."""

import datetime
import logging
from collections.abc import Iterable
from enum import StrEnum, auto
from pathlib import Path
from typing import NamedTuple

import polars as pl
from dateutil.relativedelta import MO, relativedelta

from roomboard.constants import EXPORT_COLUMNS
from roomboard.engine import MeetingPhase, meeting_phase
from roomboard.records import Meeting
from roomboard.rooms import RoomRegistry
from roomboard.time_utils import Instant, day_of_week_code, format_date, format_duration

logger = logging.getLogger(__name__)


class ExportPeriod(StrEnum):
    DAY = auto()
    WEEK = auto()
    MONTH = auto()


class DateRange(NamedTuple):
    """Represents a duration between two specific dates, both included."""

    start: datetime.date
    end: datetime.date

    def contains(self, day: datetime.date) -> bool:
        return self.start <= day <= self.end


EXPORT_STATUS = {
    MeetingPhase.ENDED: "Ended",
    MeetingPhase.IN_PROGRESS: "In Progress",
    MeetingPhase.SCHEDULED: "Scheduled",
    MeetingPhase.COMPLETED: "Completed",
    MeetingPhase.PAST: "Past",
    MeetingPhase.FUTURE: "Future",
}


def period_range(period: ExportPeriod, reference: datetime.date) -> DateRange:
    """The day, the Monday-to-Sunday week or the calendar month containing `reference`."""
    if period == ExportPeriod.DAY:
        return DateRange(reference, reference)
    if period == ExportPeriod.WEEK:
        monday = reference + relativedelta(weekday=MO(-1))
        return DateRange(monday, monday + relativedelta(days=6))
    if period == ExportPeriod.MONTH:
        return DateRange(
            reference + relativedelta(day=1), reference + relativedelta(day=31)
        )
    raise ValueError(f"Unsupported export period: {period}")


def export_filename(
    period: ExportPeriod, reference: datetime.date, suffix: str = ".xlsx"
) -> str:
    stamp = reference.strftime("%Y-%m") if period == ExportPeriod.MONTH else reference.isoformat()
    return f"meeting-export-{period}-{stamp}{suffix}"


def export_meetings(
    meetings: Iterable[Meeting],
    period: ExportPeriod,
    instant: Instant,
    registry: RoomRegistry | None = None,
    reference: datetime.date | None = None,
) -> pl.DataFrame:
    """One row per meeting of the period around `reference` (the day of
    `instant` by default), with its status at `instant`."""
    bounds = period_range(period, reference or instant.date)
    selected = sorted(
        (m for m in meetings if bounds.contains(m.date)),
        key=lambda m: (m.date, m.start_time, m.id),
    )
    rows = [
        {
            "Date": format_date(m.date),
            "Day of Week": day_of_week_code(m.date),
            "Room": registry.display_name(m.room) if registry is not None else m.room,
            "Start Time": f"{m.start_time:%H:%M}",
            "End Time": f"{m.end_time:%H:%M}",
            "Duration": format_duration(m.duration),
            "Purpose": m.purpose.value,
            "Department": m.department or "",
            "Title": m.title,
            "Content": m.content,
            "Status": EXPORT_STATUS[meeting_phase(m, instant)],
        }
        for m in selected
    ]
    logger.info(f"Exporting {len(rows)} meeting(s) from {bounds.start} to {bounds.end}")
    return pl.DataFrame(rows, schema={c: pl.String for c in EXPORT_COLUMNS})


def write_export(frame: pl.DataFrame, path: Path | str) -> Path:
    """Write an export as CSV or as an Excel workbook, depending on the suffix."""
    path = Path(path)
    if path.suffix.lower() == ".csv":
        frame.write_csv(path)
    elif path.suffix.lower() == ".xlsx":
        frame.write_excel(path, worksheet="Meetings")
    else:
        raise ValueError(f"Unsupported export format {path.suffix!r}")
    return path
