#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import pytest

from roomboard.exceptions import UnknownRoomError
from roomboard.rooms import Room, RoomRegistry, normalise_name
from tests.meeting_utils import ROOM_3, ROOM_4


def test_normalise_name():
    assert normalise_name("  Phòng   họp\tLẦU 3 ") == "phòng họp lầu 3"


@pytest.mark.parametrize(
    "raw, expected",
    [
        (ROOM_3, ROOM_3),
        ("P.HỌP LẦU 3", ROOM_3),
        ("PHÒNG HỌP LẦU 4", ROOM_4),
        ("phòng họp lầu 4", ROOM_4),
        ("  Phòng  họp lầu 3 ", ROOM_3),
        ("lầu 4", ROOM_4),
        ("Phòng họp lầu 3 (tầng 3)", ROOM_3),
    ],
)
def test_match(registry, raw, expected):
    assert registry.match(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "Kho", 3])
def test_match_nothing(registry, raw):
    assert registry.match(raw) is None


def test_match_is_idempotent_on_keys(registry):
    for key in registry.keys:
        assert registry.match(registry.match(key)) == key


def test_exact_beats_containment():
    registry = RoomRegistry(
        [Room(key="Room A Annex", display_name="Annex"), Room(key="Room A", display_name="A")]
    )
    assert registry.match("Room A") == "Room A"
    assert registry.match("room a") == "Room A"


def test_shortest_containing_key_wins():
    registry = RoomRegistry(
        [
            Room(key="Board room east wing", display_name="East"),
            Room(key="Board room", display_name="Main"),
        ]
    )
    assert registry.match("board") == "Board room"


def test_longest_contained_key_wins():
    registry = RoomRegistry(
        [Room(key="Lab", display_name="Lab"), Room(key="Lab 2", display_name="Lab 2")]
    )
    assert registry.match("Old Lab 2 upstairs") == "Lab 2"


def test_declaration_order_breaks_ties():
    registry = RoomRegistry(
        [Room(key="Red 1", display_name="Red 1"), Room(key="Red 2", display_name="Red 2")]
    )
    assert registry.match("red") == "Red 1"


def test_resolve_suggests(registry):
    with pytest.raises(UnknownRoomError) as excinfo:
        registry.resolve("Phong hop lau 3")
    assert excinfo.value.suggestion == ROOM_3


def test_same_room(registry):
    assert registry.same_room("P.HỌP LẦU 3", ROOM_3)
    assert not registry.same_room(ROOM_3, ROOM_4)


def test_discover_registers_unknown_rooms(registry):
    added = registry.discover(["P.HỌP LẦU 3", "Phòng   đào tạo", "Phòng đào tạo", ""])
    assert added == ["Phòng đào tạo"]
    assert registry.keys == [ROOM_3, ROOM_4, "Phòng đào tạo"]
    assert registry.display_name("Phòng đào tạo") == "Phòng đào tạo"


def test_register_existing_key_is_a_noop(registry):
    room = registry.register(Room(key=ROOM_3, display_name="Other"))
    assert room.display_name == ROOM_3
    assert len(registry) == 2
