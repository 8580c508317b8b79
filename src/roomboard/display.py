#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from collections.abc import Iterable, Mapping

from rich.console import Console
from rich.table import Table

from roomboard.aliases import RoomKey
from roomboard.engine import MeetingPhase, RoomState, RoomStatus, meeting_phase
from roomboard.records import Meeting
from roomboard.rooms import RoomRegistry
from roomboard.time_utils import Instant, format_date, format_duration

STATUS_STYLES = {
    RoomStatus.OCCUPIED: "bold red",
    RoomStatus.UPCOMING: "bold yellow",
    RoomStatus.EMPTY: "bold green",
}

PHASE_STYLES = {
    MeetingPhase.IN_PROGRESS: "red",
    MeetingPhase.SCHEDULED: "yellow",
    MeetingPhase.ENDED: "dim",
    MeetingPhase.COMPLETED: "dim",
    MeetingPhase.PAST: "dim",
    MeetingPhase.FUTURE: "white",
}


def _slot(meeting: Meeting | None) -> str:
    if meeting is None:
        return "-"
    return f"{meeting.start_time:%H:%M}-{meeting.end_time:%H:%M} {meeting.title}"


def room_states_table(
    states: Mapping[RoomKey, RoomState], registry: RoomRegistry
) -> Table:
    """Render room states as a rich table with the following format

    ┏━━━━━━━━━━━━━━━━━┳━━━━━━━━━━┳━━━━━━━━━━━━━━━━━━━━━┳━━━━━━━━━━━━━━━━━━━━━┓
    ┃ Room            ┃ Status   ┃ Current meeting     ┃ Next meeting        ┃
    ┡━━━━━━━━━━━━━━━━━╇━━━━━━━━━━╇━━━━━━━━━━━━━━━━━━━━━╇━━━━━━━━━━━━━━━━━━━━━┩
    """  # noqa
    table = Table(show_header=True, header_style="bold magenta", expand=True)
    table.add_column("Room", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center", no_wrap=True)
    table.add_column("Current meeting", style="white")
    table.add_column("Next meeting", style="dim")
    for room, state in states.items():
        table.add_row(
            registry.display_name(room),
            f"[{STATUS_STYLES[state.status]}]{state.status.label}[/]",
            _slot(state.active),
            _slot(state.next),
        )
    return table


def meetings_table(meetings: Iterable[Meeting], instant: Instant) -> Table:
    table = Table(show_header=True, header_style="bold magenta", expand=True)
    table.add_column("Date", no_wrap=True)
    table.add_column("Room", style="cyan")
    table.add_column("Time", no_wrap=True)
    table.add_column("Duration", justify="right")
    table.add_column("Purpose")
    table.add_column("Title", style="white")
    table.add_column("Phase", justify="center")
    for meeting in meetings:
        phase = meeting_phase(meeting, instant)
        table.add_row(
            format_date(meeting.date),
            meeting.room,
            f"{meeting.start_time:%H:%M}-{meeting.end_time:%H:%M}",
            format_duration(meeting.duration),
            meeting.purpose.value,
            meeting.title,
            f"[{PHASE_STYLES[phase]}]{phase}[/]",
        )
    return table


def display_room_states(
    states: Mapping[RoomKey, RoomState],
    registry: RoomRegistry,
    console: Console | None = None,
) -> None:
    console = console or Console()
    console.print(room_states_table(states, registry))
