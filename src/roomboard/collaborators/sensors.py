#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Room telemetry (temperature, humidity, occupancy, ...) and light control.

The physical bridge is opaque: it pushes readings through `on_telemetry` and
receives light commands through `trigger_light`."""

import datetime
import logging
from enum import StrEnum, auto
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from roomboard.aliases import RoomKey
from roomboard.events import EventBus, Listener, Unsubscribe
from roomboard.exceptions import UnknownRoomError
from roomboard.rooms import RoomRegistry
from roomboard.time_utils import Clock, system_clock

logger = logging.getLogger(__name__)


class TelemetryKind(StrEnum):
    TEMPERATURE = auto()
    HUMIDITY = auto()
    OCCUPANCY = auto()
    LIGHT = auto()
    POWER = auto()


@runtime_checkable
class SensorBridge(Protocol):
    def on_telemetry(self, room: str, kind: str, value: float | bool) -> None: ...

    def trigger_light(self, room: str, on: bool) -> None: ...


class LightController(Protocol):
    def trigger_light(self, room: RoomKey, on: bool) -> None: ...


class Reading(BaseModel):
    model_config = ConfigDict(frozen=True)

    room: RoomKey
    kind: TelemetryKind
    value: float | bool
    at: datetime.datetime


class SensorHub:
    """Keeps the latest reading per room and kind, and routes light commands
    to the controller after resolving the room name.

    Parameters
    ----------
    registry
        Resolves the room names used by the bridge.
    controller
        Receives light commands. Commands are dropped with a warning when unset.
    clock
        Timestamps readings.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        controller: LightController | None = None,
        clock: Clock = system_clock,
    ):
        self._registry = registry
        self._controller = controller
        self._clock = clock
        self._latest: dict[tuple[RoomKey, TelemetryKind], Reading] = {}
        self._events: EventBus[Reading] = EventBus("telemetry")

    def subscribe(self, listener: Listener[Reading]) -> Unsubscribe:
        return self._events.subscribe(listener)

    def on_telemetry(self, room: str, kind: str, value: float | bool) -> Reading | None:
        key = self._registry.match(room)
        if key is None:
            logger.warning(f"Dropping {kind} reading for unknown room {room!r}")
            return None
        try:
            telemetry_kind = TelemetryKind(kind.lower())
        except ValueError:
            logger.warning(f"Dropping reading of unknown kind {kind!r} for {key}")
            return None
        reading = Reading(room=key, kind=telemetry_kind, value=value, at=self._clock())
        self._latest[(key, telemetry_kind)] = reading
        self._events.publish(reading)
        return reading

    def latest(self, room: str, kind: TelemetryKind | None = None) -> dict[TelemetryKind, Reading]:
        """Latest readings of a room, optionally restricted to one kind."""
        key = self._registry.resolve(room)
        return {
            k: reading
            for (r, k), reading in self._latest.items()
            if r == key and (kind is None or k == kind)
        }

    def trigger_light(self, room: str, on: bool) -> None:
        key = self._registry.match(room)
        if key is None:
            raise UnknownRoomError(room, self._registry.suggest(room))
        if self._controller is None:
            logger.warning(f"No light controller configured, ignoring command for {key}")
            return
        logger.info(f"Turning light {'on' if on else 'off'} in {key}")
        self._controller.trigger_light(key, on)


class RecordingLightController:
    """Remembers the commands it receives."""

    def __init__(self):
        self.commands: list[tuple[RoomKey, bool]] = []

    def trigger_light(self, room: RoomKey, on: bool) -> None:
        self.commands.append((room, on))
