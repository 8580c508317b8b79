#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from collections.abc import Iterable

from roomboard.constants import ALL_ROOMS
from roomboard.events import EventBus, Listener, RoomFilterChanged, Unsubscribe
from roomboard.exceptions import UnknownRoomError
from roomboard.records import Meeting
from roomboard.rooms import RoomRegistry

logger = logging.getLogger(__name__)


def apply_filter(
    meetings: Iterable[Meeting], room_filter: str, registry: RoomRegistry
) -> list[Meeting]:
    """All meetings when the filter is ``"all"``, else those held in the
    filtered room according to the registry matching policy."""
    if room_filter == ALL_ROOMS:
        return list(meetings)
    return [m for m in meetings if registry.same_room(m.room, room_filter)]


class RoomFilter:
    """The room currently selected to slice the views, ``"all"`` or a registry key."""

    def __init__(self, registry: RoomRegistry, initial: str = ALL_ROOMS):
        self._registry = registry
        self._events: EventBus[RoomFilterChanged] = EventBus("room-filter")
        self._current = self._resolve(initial)

    @property
    def current(self) -> str:
        return self._current

    def _resolve(self, value: str) -> str:
        if value is None or value.strip().casefold() == ALL_ROOMS:
            return ALL_ROOMS
        key = self._registry.match(value)
        if key is None:
            raise UnknownRoomError(value, self._registry.suggest(value))
        return key

    def subscribe(self, listener: Listener[RoomFilterChanged]) -> Unsubscribe:
        return self._events.subscribe(listener)

    def set(self, value: str) -> str:
        """Select a room (or ``"all"``). Subscribers are only notified when the
        selection actually changes."""
        key = self._resolve(value)
        if key == self._current:
            return key
        previous, self._current = self._current, key
        logger.debug(f"Room filter changed from {previous!r} to {key!r}")
        self._events.publish(RoomFilterChanged(filter=key, previous=previous))
        return key

    def apply(self, meetings: Iterable[Meeting]) -> list[Meeting]:
        return apply_filter(meetings, self._current, self._registry)
