#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import polars as pl

from roomboard.records import Purpose

MEETING_SCHEMA = {
    "id": pl.String,
    "room": pl.String,
    "date": pl.Date,
    "start_time": pl.Time,
    "end_time": pl.Time,
    "purpose": pl.Enum([x for x in Purpose]),
    "title": pl.String,
    "content": pl.String,
    "description": pl.String,
    "department": pl.String,
    "organizer": pl.String,
    "is_ended": pl.Boolean,
    "force_ended_by_user": pl.Boolean,
    "ended_at": pl.Time,
    "updated_at": pl.Datetime(time_unit="us", time_zone="UTC"),
}

SORT_COLUMNS = ["date", "start_time", "id"]
