#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
import random

import pytest

from roomboard.engine import MeetingPhase, RoomStatus, is_ended_at, meeting_phase
from tests.meeting_utils import DAY, ROOM_3, ROOM_4, at, make_meeting, raw_meeting


@pytest.fixture()
def m1(registry):
    return make_meeting(registry, id="m1", start="09:00", end="10:30")


def test_occupied(engine, m1):
    state = engine.room_state([m1], ROOM_3, at("09:45"))
    assert state.status == RoomStatus.OCCUPIED
    assert state.active == m1
    assert state.next is None
    assert state.at == at("09:45")


def test_upcoming(engine, m1):
    state = engine.room_state([m1], ROOM_3, at("08:30"))
    assert state.status == RoomStatus.UPCOMING
    assert state.active is None
    assert state.next == m1


def test_empty_once_ended(engine, m1):
    state = engine.room_state([m1], ROOM_3, at("10:30"))
    assert state.status == RoomStatus.EMPTY
    assert state.active is None and state.next is None


def test_start_minute_is_running(engine, m1):
    assert engine.room_state([m1], ROOM_3, at("09:00")).status == RoomStatus.OCCUPIED


def test_empty_record_set(engine, registry):
    states = engine.all_room_states([], at("09:00"))
    assert list(states) == registry.keys
    assert all(s.status == RoomStatus.EMPTY for s in states.values())


def test_force_ended_meeting_is_ignored(engine, registry):
    ended = make_meeting(registry, forceEndedByUser=True, isEnded=True)
    later = make_meeting(registry, id="m2", start="11:00", end="12:00")
    state = engine.room_state([ended, later], ROOM_3, at("09:45"))
    assert state.status == RoomStatus.UPCOMING
    assert state.next == later


def test_back_to_back(engine, registry):
    a = make_meeting(registry, id="a", start="09:00", end="10:00")
    b = make_meeting(registry, id="b", start="10:00", end="11:00")
    state = engine.room_state([b, a], ROOM_3, at("10:00"))
    assert state.active == b
    state = engine.room_state([b, a], ROOM_3, at("09:59"))
    assert state.active == a
    assert state.next == b


def test_other_days_and_rooms_do_not_count(engine, registry):
    meetings = [
        make_meeting(registry, id="yesterday", date="14/01/2025"),
        make_meeting(registry, id="tomorrow", date="16/01/2025"),
        make_meeting(registry, id="upstairs", room=ROOM_4),
    ]
    assert engine.room_state(meetings, ROOM_3, at("09:45")).status == RoomStatus.EMPTY
    assert engine.room_state(meetings, ROOM_4, at("09:45")).active.id == "upstairs"


def test_room_is_matched_by_policy(engine, m1):
    assert engine.room_state([m1], "p.họp lầu 3", at("09:45")).active == m1


def test_overlapping_running_meetings_pick_earliest_then_smallest_id(engine, registry):
    meetings = [
        make_meeting(registry, id="z", start="09:30", end="11:00"),
        make_meeting(registry, id="y", start="09:00", end="10:00"),
        make_meeting(registry, id="x", start="09:00", end="10:00"),
    ]
    assert engine.room_state(meetings, ROOM_3, at("09:45")).active.id == "x"


def test_engine_is_pure(engine, registry):
    meetings = [
        make_meeting(registry, id=f"m{i}", start=f"{8 + i:02d}:00", end=f"{8 + i:02d}:45")
        for i in range(8)
    ]
    expected = engine.all_room_states(meetings, at("10:15"))
    for _ in range(5):
        shuffled = random.sample(meetings, len(meetings))
        assert engine.all_room_states(shuffled, at("10:15")) == expected


def test_batch_agrees_with_single_room(engine, registry):
    meetings = [
        make_meeting(registry, id="a", start="09:00", end="10:00"),
        make_meeting(registry, id="b", room=ROOM_4, start="11:00", end="12:00"),
    ]
    for minute in ("08:00", "09:30", "10:00", "11:30"):
        batch = engine.all_room_states(meetings, at(minute))
        for room in registry.keys:
            assert batch[room] == engine.room_state(meetings, room, at(minute))


def test_ended_meeting_never_comes_back(engine, store):
    store.load_all([raw_meeting("m1")])
    store.force_end("m1", at("09:50"))
    for minute in ("08:00", "09:00", "09:50", "10:00"):
        state = engine.room_state(store.snapshot(), ROOM_3, at(minute))
        assert state.active is None and state.next is None


def test_force_end_transition(engine, store):
    store.load_all([raw_meeting("m1")])
    assert engine.room_state(store.snapshot(), ROOM_3, at("09:50")).status == RoomStatus.OCCUPIED
    store.force_end("m1", at("09:50"))
    state = engine.room_state(store.snapshot(), ROOM_3, at("09:50"))
    assert state.status == RoomStatus.EMPTY
    meeting = store.get("m1")
    assert meeting.is_ended and meeting.force_ended_by_user


def test_state_equality_ignores_instant(engine, m1):
    first = engine.room_state([m1], ROOM_3, at("09:15"))
    second = engine.room_state([m1], ROOM_3, at("09:45"))
    assert first.same_as(second)
    assert not first.same_as(engine.room_state([m1], ROOM_3, at("10:45")))
    assert not first.same_as(None)


@pytest.mark.parametrize(
    "instant, phase",
    [
        (at("08:00"), MeetingPhase.SCHEDULED),
        (at("09:00"), MeetingPhase.IN_PROGRESS),
        (at("10:30"), MeetingPhase.COMPLETED),
        (at("09:00", datetime.date(2025, 1, 16)), MeetingPhase.PAST),
        (at("09:00", datetime.date(2025, 1, 14)), MeetingPhase.FUTURE),
    ],
)
def test_meeting_phase(m1, instant, phase):
    assert meeting_phase(m1, instant) == phase


def test_ended_phase_and_lagging_flag(registry, m1):
    flagged = make_meeting(registry, isEnded=True)
    assert meeting_phase(flagged, at("09:30")) == MeetingPhase.ENDED
    assert not is_ended_at(m1, at("10:29"))
    assert is_ended_at(m1, at("10:30"))
    assert is_ended_at(m1, at("08:00", datetime.date(2025, 1, 16)))
    assert DAY == m1.date
