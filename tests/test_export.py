#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import polars as pl
import pytest

from roomboard.constants import EXPORT_COLUMNS
from roomboard.export import (
    DateRange,
    ExportPeriod,
    export_filename,
    export_meetings,
    period_range,
    write_export,
)
from tests.meeting_utils import ROOM_4, at, make_meeting

day = datetime.date


@pytest.fixture()
def meetings(registry):
    return [
        make_meeting(registry, id="m1"),
        make_meeting(registry, id="m2", room=ROOM_4, start="11:00", end="12:00", title="Phỏng vấn"),
        make_meeting(registry, id="m3", date="14/01/2025"),
        make_meeting(registry, id="m4", date="20/01/2025"),
        make_meeting(registry, id="m5", date="03/01/2025", isEnded=True),
        make_meeting(registry, id="m6", start="08:00", end="09:00", department="HR"),
    ]


@pytest.mark.parametrize(
    "period, reference, expected",
    [
        (ExportPeriod.DAY, day(2025, 1, 15), DateRange(day(2025, 1, 15), day(2025, 1, 15))),
        (ExportPeriod.WEEK, day(2025, 1, 15), DateRange(day(2025, 1, 13), day(2025, 1, 19))),
        (ExportPeriod.WEEK, day(2025, 1, 19), DateRange(day(2025, 1, 13), day(2025, 1, 19))),
        (ExportPeriod.WEEK, day(2025, 1, 13), DateRange(day(2025, 1, 13), day(2025, 1, 19))),
        (ExportPeriod.MONTH, day(2024, 2, 10), DateRange(day(2024, 2, 1), day(2024, 2, 29))),
    ],
)
def test_period_range(period, reference, expected):
    assert period_range(period, reference) == expected


def test_filenames():
    day = datetime.date(2025, 1, 15)
    assert export_filename(ExportPeriod.DAY, day) == "meeting-export-day-2025-01-15.xlsx"
    assert export_filename(ExportPeriod.MONTH, day, ".csv") == "meeting-export-month-2025-01.csv"


def test_day_export(meetings, registry):
    frame = export_meetings(meetings, ExportPeriod.DAY, at("09:45"), registry)
    assert frame.columns == EXPORT_COLUMNS
    assert frame["Start Time"].to_list() == ["08:00", "09:00", "11:00"]
    assert frame["Status"].to_list() == ["Completed", "In Progress", "Scheduled"]
    first = frame.row(0, named=True)
    assert first["Day of Week"] == "4"
    assert first["Duration"] == "1h"
    assert first["Department"] == "HR"
    assert frame.row(2, named=True)["Purpose"] == "Phỏng vấn"


def test_week_and_month_exports(meetings, registry):
    week = export_meetings(meetings, ExportPeriod.WEEK, at("09:45"), registry)
    assert week["Date"].to_list() == ["14/01/2025", "15/01/2025", "15/01/2025", "15/01/2025"]
    assert week["Status"][0] == "Past"

    month = export_meetings(meetings, ExportPeriod.MONTH, at("09:45"), registry)
    assert month.height == 6
    assert month["Status"][0] == "Ended"
    assert month["Status"][-1] == "Future"


def test_export_of_another_period(meetings, registry):
    frame = export_meetings(
        meetings, ExportPeriod.DAY, at("09:45"), registry, reference=datetime.date(2025, 1, 20)
    )
    assert frame.height == 1
    assert frame["Status"][0] == "Future"


def test_empty_export(registry):
    frame = export_meetings([], ExportPeriod.DAY, at("09:45"), registry)
    assert frame.height == 0
    assert frame.columns == EXPORT_COLUMNS


def test_write_csv(meetings, registry, tmp_path):
    frame = export_meetings(meetings, ExportPeriod.DAY, at("09:45"), registry)
    path = write_export(frame, tmp_path / "export.csv")
    read = pl.read_csv(path, infer_schema_length=0)
    assert read.columns == EXPORT_COLUMNS
    assert read["Title"].to_list() == frame["Title"].to_list()


def test_write_xlsx(meetings, registry, tmp_path):
    pytest.importorskip("xlsxwriter")
    frame = export_meetings(meetings, ExportPeriod.DAY, at("09:45"), registry)
    assert write_export(frame, tmp_path / "export.xlsx").exists()


def test_unsupported_format(registry, tmp_path):
    frame = export_meetings([], ExportPeriod.DAY, at("09:45"), registry)
    with pytest.raises(ValueError):
        write_export(frame, tmp_path / "export.json")
