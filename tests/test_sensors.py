#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import pytest

from roomboard.collaborators.sensors import (
    RecordingLightController,
    SensorBridge,
    SensorHub,
    TelemetryKind,
)
from roomboard.exceptions import UnknownRoomError
from tests.meeting_utils import ROOM_3, ROOM_4


@pytest.fixture()
def controller():
    return RecordingLightController()


@pytest.fixture()
def hub(registry, controller, clock):
    return SensorHub(registry, controller=controller, clock=clock)


def test_hub_is_a_bridge(hub):
    assert isinstance(hub, SensorBridge)


def test_latest_readings(hub, clock):
    seen = []
    hub.subscribe(seen.append)
    hub.on_telemetry("P.HỌP LẦU 3", "temperature", 24.5)
    hub.on_telemetry(ROOM_3, "OCCUPANCY", True)
    hub.on_telemetry(ROOM_3, "temperature", 25.0)

    latest = hub.latest("phòng họp lầu 3")
    assert latest[TelemetryKind.TEMPERATURE].value == 25.0
    assert latest[TelemetryKind.OCCUPANCY].value is True
    assert latest[TelemetryKind.TEMPERATURE].at == clock()
    assert list(hub.latest(ROOM_3, TelemetryKind.OCCUPANCY)) == [TelemetryKind.OCCUPANCY]
    assert hub.latest(ROOM_4) == {}
    assert len(seen) == 3


def test_unusable_readings_are_dropped(hub):
    assert hub.on_telemetry("Kho", "temperature", 20.0) is None
    assert hub.on_telemetry(ROOM_3, "co2", 400.0) is None
    assert hub.latest(ROOM_3) == {}
    with pytest.raises(UnknownRoomError):
        hub.latest("Kho")


def test_light_commands(hub, controller):
    hub.trigger_light("p.họp lầu 4", True)
    hub.trigger_light(ROOM_3, False)
    assert controller.commands == [(ROOM_4, True), (ROOM_3, False)]
    with pytest.raises(UnknownRoomError):
        hub.trigger_light("Kho", True)


def test_light_commands_without_controller(registry, clock):
    SensorHub(registry, clock=clock).trigger_light(ROOM_3, True)
