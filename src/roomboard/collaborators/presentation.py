#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The view side of the dashboard. The core only publishes events; a presenter
subscribes to them and renders however it likes."""

import logging
from typing import Protocol

from rich.console import Console

from roomboard.display import STATUS_STYLES
from roomboard.events import (
    Notification,
    NotificationKind,
    RoomFilterChanged,
    RoomStateChanged,
)
from roomboard.rooms import RoomRegistry
from roomboard.time_utils import format_time

logger = logging.getLogger(__name__)

NOTIFICATION_STYLES = {
    NotificationKind.INFO: "blue",
    NotificationKind.SUCCESS: "green",
    NotificationKind.WARN: "yellow",
    NotificationKind.ERROR: "bold red",
}


class Presenter(Protocol):
    def on_room_state(self, change: RoomStateChanged) -> None: ...

    def on_filter(self, change: RoomFilterChanged) -> None: ...

    def on_notification(self, notification: Notification) -> None: ...


class ConsolePresenter:
    """Prints dashboard events with rich."""

    def __init__(self, registry: RoomRegistry, console: Console | None = None):
        self._registry = registry
        self.console = console or Console()

    def on_room_state(self, change: RoomStateChanged) -> None:
        line = (
            f"[{format_time(change.at.minutes)}] {self._registry.display_name(change.room)}: "
            f"[{STATUS_STYLES[change.status]}]{change.status.label}[/]"
        )
        if change.active is not None:
            line += f" - {change.active.title} until {change.active.end_time:%H:%M}"
        elif change.next is not None:
            line += f" - next: {change.next.title} at {change.next.start_time:%H:%M}"
        self.console.print(line)

    def on_filter(self, change: RoomFilterChanged) -> None:
        self.console.print(f"Showing room: [cyan]{change.filter}[/]")

    def on_notification(self, notification: Notification) -> None:
        style = NOTIFICATION_STYLES[notification.kind]
        self.console.print(f"[{style}]{notification.kind.upper()}[/] {notification.message}")


class RecordingPresenter:
    """Keeps every event it receives, in order."""

    def __init__(self):
        self.room_states: list[RoomStateChanged] = []
        self.filters: list[RoomFilterChanged] = []
        self.notifications: list[Notification] = []

    def on_room_state(self, change: RoomStateChanged) -> None:
        self.room_states.append(change)

    def on_filter(self, change: RoomFilterChanged) -> None:
        self.filters.append(change)

    def on_notification(self, notification: Notification) -> None:
        self.notifications.append(notification)
