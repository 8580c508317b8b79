#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from rich.console import Console

from roomboard.collaborators.presentation import ConsolePresenter
from roomboard.display import display_room_states, meetings_table
from roomboard.events import Notification, NotificationKind, RoomStateChanged
from tests.meeting_utils import ROOM_4, at, make_meeting


def recording_console() -> Console:
    return Console(record=True, width=160, color_system=None)


def test_room_states_table(registry, engine):
    meetings = [
        make_meeting(registry, id="m1"),
        make_meeting(registry, id="m2", room=ROOM_4, start="11:00", end="12:00", title="Đào tạo"),
    ]
    console = recording_console()
    display_room_states(engine.all_room_states(meetings, at("09:45")), registry, console)
    text = console.export_text()
    assert "Đang họp" in text
    assert "09:00-10:30 Họp giao ban" in text
    assert "Sắp họp" in text
    assert "11:00-12:00 Đào tạo" in text


def test_meetings_table(registry):
    console = recording_console()
    console.print(meetings_table([make_meeting(registry, id="m1")], at("09:45")))
    text = console.export_text()
    assert "15/01/2025" in text
    assert "1h30m" in text
    assert "in_progress" in text


def test_console_presenter(registry, engine):
    console = recording_console()
    presenter = ConsolePresenter(registry, console)
    state = engine.room_state([make_meeting(registry, id="m1")], "P.HỌP LẦU 3", at("09:45"))
    presenter.on_room_state(RoomStateChanged.from_state(state, None))
    presenter.on_notification(Notification(kind=NotificationKind.WARN, message="offline"))
    text = console.export_text()
    assert "[09:45] Phòng họp lầu 3: Đang họp - Họp giao ban until 10:30" in text
    assert "WARN offline" in text
