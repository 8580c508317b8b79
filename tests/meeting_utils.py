#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
from typing import Any

from roomboard.records import Meeting, normalise_record
from roomboard.rooms import RoomRegistry
from roomboard.time_utils import Instant

ROOM_3 = "Phòng họp lầu 3"
ROOM_4 = "Phòng họp lầu 4"
DAY = datetime.date(2025, 1, 15)
STAMP = datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)


def raw_meeting(
    id: str = "m1",
    room: str = ROOM_3,
    date: str = "15/01/2025",
    start: str = "09:00",
    end: str = "10:30",
    title: str = "Họp giao ban",
    **extra: Any,
) -> dict[str, Any]:
    return {
        "id": id,
        "room": room,
        "date": date,
        "startTime": start,
        "endTime": end,
        "title": title,
        **extra,
    }


def make_meeting(registry: RoomRegistry, **kwargs: Any) -> Meeting:
    return normalise_record(raw_meeting(**kwargs), registry, now=STAMP)


def at(hhmm: str, day: datetime.date = DAY) -> Instant:
    return Instant.of(day, hhmm)
