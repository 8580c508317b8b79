#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Reading meeting schedules from spreadsheets (CSV or Excel workbooks).

Rows use the Vietnamese column headers of the schedule template (``NGÀY``,
``PHÒNG``, ``THỜI GIAN BẮT ĐẦU``, ...). Each row is normalised independently so
that one bad row does not hide the others."""

import datetime
import logging
from pathlib import Path
from typing import Any, NamedTuple

import polars as pl

from roomboard.constants import DEFAULT_TZ_OFFSET_HOURS
from roomboard.exceptions import ParseError, RecordValidationError
from roomboard.records import Meeting, canonical_keys, normalise_record
from roomboard.rooms import RoomRegistry

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls", ".xlsb", ".ods"}


class RowError(NamedTuple):
    row: int
    """1-based index of the data row (the header is row 0)."""
    error: RecordValidationError


class ImportResult(NamedTuple):
    meetings: list[Meeting]
    errors: list[RowError]

    @property
    def ok(self) -> bool:
        return not self.errors


def read_rows(path: Path | str, sheet: str | None = None) -> list[dict[str, Any]]:
    """Load the raw rows of a CSV file or of one sheet of an Excel workbook.
    Rows with every cell empty are dropped."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".csv":
        frame = pl.read_csv(path, infer_schema_length=0)
    elif suffix in EXCEL_SUFFIXES:
        frame = pl.read_excel(path, sheet_name=sheet)
    else:
        raise ParseError(f"Unsupported schedule format {path.suffix!r}")
    frame = frame.rename({c: c.strip() for c in frame.columns})
    rows = frame.to_dicts()
    return [
        row
        for row in rows
        if any(v is not None and str(v).strip() for v in row.values())
    ]


def normalise_rows(
    rows: list[dict[str, Any]],
    registry: RoomRegistry,
    now: datetime.datetime | None = None,
    tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
) -> ImportResult:
    meetings, errors = [], []
    for index, row in enumerate(rows, start=1):
        try:
            meetings.append(
                normalise_record(
                    row, registry, now=now, tz_offset_hours=tz_offset_hours
                )
            )
        except RecordValidationError as e:
            logger.warning(f"Skipping row {index}: {e}")
            errors.append(RowError(index, e))
    logger.info(f"Read {len(meetings)} meeting(s), {len(errors)} invalid row(s)")
    return ImportResult(meetings, errors)


def read_schedule(
    path: Path | str,
    registry: RoomRegistry,
    sheet: str | None = None,
    discover_rooms: bool = False,
    now: datetime.datetime | None = None,
    tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
) -> ImportResult:
    """Read and normalise a schedule file.

    Parameters
    ----------
    path
        A ``.csv`` file or an Excel workbook.
    registry
        Rooms the ``PHÒNG`` column is resolved against.
    sheet
        Worksheet name, the first sheet when unset.
    discover_rooms
        Register rooms the registry does not know instead of rejecting their rows.
    """
    rows = read_rows(path, sheet)
    if discover_rooms:
        rooms = (canonical_keys(r).get("room") for r in rows)
        registry.discover(str(room) for room in rooms if room)
    return normalise_rows(rows, registry, now=now, tz_offset_hours=tz_offset_hours)
