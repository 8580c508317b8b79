#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import asyncio

import pytest

from roomboard.app import create_dashboard
from roomboard.booking import BookingRequest
from roomboard.collaborators.persistence import HttpMeetingRepository, InMemoryRepository
from roomboard.collaborators.presentation import RecordingPresenter
from roomboard.collaborators.sensors import RecordingLightController
from roomboard.config import load_config
from roomboard.engine import RoomStatus
from roomboard.events import NotificationKind
from roomboard.exceptions import NetworkError
from tests.meeting_utils import ROOM_3, ROOM_4, raw_meeting

ROOM_5 = "Phòng họp lầu 5"


class FlakyRepository(InMemoryRepository):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.offline = False

    def list_meetings(self):
        if self.offline:
            raise NetworkError("Cannot reach the record server")
        return super().list_meetings()


@pytest.fixture()
def repository():
    return FlakyRepository(
        [
            raw_meeting("m1"),
            raw_meeting("m2", room="P.HỌP LẦU 4", start="10:00", end="11:00"),
            raw_meeting("m3", room=ROOM_5, start="13:00", end="14:00"),
        ]
    )


@pytest.fixture()
def dashboard(repository, clock):
    cfg = load_config(overrides=["auth.enabled=false", "scheduler.debounce=0"])
    return create_dashboard(cfg, clock=clock, persistence=repository)


def test_refresh_discovers_rooms(dashboard, clock):
    assert asyncio.run(dashboard.refresh()) == 3
    assert ROOM_5 in dashboard.registry
    assert dashboard.online
    assert dashboard.last_sync == clock()
    assert dashboard.store.get("m2").room == ROOM_4


def test_status(dashboard):
    asyncio.run(dashboard.refresh())
    status = dashboard.status()
    assert status.filter == "all"
    assert status.meeting_count == 3
    rooms = {summary.room: summary for summary in status.rooms}
    assert list(rooms) == [ROOM_3, ROOM_4, ROOM_5]
    assert rooms[ROOM_3].status == RoomStatus.OCCUPIED
    assert rooms[ROOM_3].label == "Đang họp"
    assert rooms[ROOM_3].active_until == "10:30"
    assert rooms[ROOM_4].status == RoomStatus.UPCOMING
    assert rooms[ROOM_4].next_start == "10:00"
    assert rooms[ROOM_4].upcoming_count == 1
    assert rooms[ROOM_5].next_title == "Họp giao ban"


def test_offline_keeps_cached_meetings(dashboard, repository):
    received = []
    dashboard.subscribe_notifications(received.append)
    asyncio.run(dashboard.refresh())

    repository.offline = True
    assert asyncio.run(dashboard.refresh()) is None
    assert asyncio.run(dashboard.refresh()) is None
    assert not dashboard.online
    assert len(dashboard.store) == 3
    assert [n.kind for n in received] == [NotificationKind.WARN]

    repository.offline = False
    assert asyncio.run(dashboard.refresh()) == 3
    assert [n.kind for n in received] == [NotificationKind.WARN, NotificationKind.SUCCESS]


def test_invalid_server_data_is_rejected(dashboard, repository):
    received = []
    dashboard.subscribe_notifications(received.append)
    asyncio.run(dashboard.refresh())
    repository.create(raw_meeting("m4", start="10:00", end="11:00"))

    assert asyncio.run(dashboard.refresh()) is None
    assert "m4" not in dashboard.store
    assert len(dashboard.store) == 3
    assert received[-1].kind == NotificationKind.ERROR


def test_presenter_follows_the_dashboard(dashboard):
    presenter = RecordingPresenter()
    detach = dashboard.attach(presenter)

    async def scenario():
        await dashboard.start()
        assert {c.room for c in presenter.room_states} == {ROOM_3, ROOM_4, ROOM_5}
        result = await dashboard.booking.submit(
            BookingRequest(
                room=ROOM_4,
                date="15/01/2025",
                start_time="09:30",
                end_time="10:00",
                purpose="Thảo luận",
                title="Trao đổi nhanh",
            )
        )
        assert result.ok
        await asyncio.sleep(0.1)
        await dashboard.stop()

    asyncio.run(scenario())
    assert presenter.room_states[-1].room == ROOM_4
    assert presenter.room_states[-1].status == RoomStatus.OCCUPIED
    assert presenter.notifications[-1].kind == NotificationKind.SUCCESS

    dashboard.filter.set(ROOM_4)
    assert presenter.filters[-1].filter == ROOM_4
    detach()
    dashboard.notify(NotificationKind.INFO, "detached")
    assert presenter.notifications[-1].kind == NotificationKind.SUCCESS


def test_light_commands_reach_the_controller(repository, clock):
    controller = RecordingLightController()
    cfg = load_config(overrides=["auth.enabled=false"])
    dashboard = create_dashboard(cfg, clock=clock, persistence=repository, light_controller=controller)
    dashboard.sensors.trigger_light("P.HỌP LẦU 3", True)
    assert controller.commands == [(ROOM_3, True)]


def test_default_dashboard():
    dashboard = create_dashboard()
    assert isinstance(dashboard.persistence, HttpMeetingRepository)
    assert dashboard.booking.gate is not None
    assert dashboard.registry.keys == [ROOM_3, ROOM_4]
