#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

DEFAULT_TZ_OFFSET_HOURS = 7
DEFAULT_TICK_PERIOD = 15.0
"""Seconds between two scheduler ticks."""
DEFAULT_DEBOUNCE = 0.25
"""Seconds during which refresh signals are coalesced."""
DEFAULT_WARN_INTERVAL = 60.0
DEFAULT_SYNC_INTERVAL = 300.0
DEFAULT_PERSISTENCE_TIMEOUT = 10.0

WORKING_HOURS_START = datetime.time(7, 0)
WORKING_HOURS_END = datetime.time(19, 0)

# rooms known before any data is loaded: key -> (display name, aliases)
DEFAULT_ROOMS: dict[str, tuple[str, list[str]]] = {
    "Phòng họp lầu 3": ("Phòng họp lầu 3", ["P.HỌP LẦU 3", "PHÒNG HỌP LẦU 3"]),
    "Phòng họp lầu 4": ("Phòng họp lầu 4", ["P.HỌP LẦU 4", "PHÒNG HỌP LẦU 4"]),
}

ALL_ROOMS = "all"

REFRESH_ROOM_STATUS = "refreshRoomStatus"
MEETING_DATA_UPDATED = "meetingDataUpdated"
ROOM_STATUS_UPDATE = "roomStatusUpdate"
REFRESH_SIGNALS = (REFRESH_ROOM_STATUS, MEETING_DATA_UPDATED, ROOM_STATUS_UPDATE)

# spreadsheet column headers, mapped to record keys
SPREADSHEET_COLUMNS = {
    "NGÀY": "date",
    "THỨ": "dayOfWeek",
    "PHÒNG": "room",
    "THỜI GIAN BẮT ĐẦU": "startTime",
    "THỜI GIAN KẾT THÚC": "endTime",
    "THỜI LƯỢNG": "duration",
    "NỘI DUNG": "content",
}

EXPORT_COLUMNS = [
    "Date",
    "Day of Week",
    "Room",
    "Start Time",
    "End Time",
    "Duration",
    "Purpose",
    "Department",
    "Title",
    "Content",
    "Status",
]
