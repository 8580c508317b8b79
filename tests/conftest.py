#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import pytest

from roomboard.constants import DEFAULT_ROOMS
from roomboard.engine import StateEngine
from roomboard.events import EventBus, Notification
from roomboard.rooms import RoomRegistry
from roomboard.store import MeetingStore
from roomboard.time_utils import FixedClock


@pytest.fixture()
def registry() -> RoomRegistry:
    return RoomRegistry.from_mapping(DEFAULT_ROOMS)


@pytest.fixture()
def clock() -> FixedClock:
    """15/01/2025 09:45, local wall time."""
    return FixedClock(datetime.datetime(2025, 1, 15, 9, 45))


@pytest.fixture()
def store(registry: RoomRegistry, clock: FixedClock) -> MeetingStore:
    return MeetingStore(registry, clock=clock)


@pytest.fixture()
def engine(registry: RoomRegistry) -> StateEngine:
    return StateEngine(registry)


@pytest.fixture()
def notifications() -> tuple[EventBus[Notification], list[Notification]]:
    bus: EventBus[Notification] = EventBus("notifications")
    received: list[Notification] = []
    bus.subscribe(received.append)
    return bus, received
