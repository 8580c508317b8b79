#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The authoritative set of meeting rooms and the name matching policy used
to map the inconsistent room spellings found in spreadsheets and API
payloads onto a registry key."""

import logging
import unicodedata
from collections.abc import Iterable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field
from rapidfuzz import fuzz, process, utils

from roomboard.aliases import RoomKey
from roomboard.exceptions import UnknownRoomError

logger = logging.getLogger(__name__)

SUGGESTION_CUTOFF = 60


class Room(BaseModel):
    """A meeting room.

    Parameters
    ----------
    key
        The registry key, used for equality and indexing.
    display_name
        The name shown to users.
    aliases
        Legacy spellings that should resolve to this room.
    """

    model_config = ConfigDict(frozen=True)

    key: RoomKey
    display_name: str
    aliases: tuple[str, ...] = Field(default_factory=tuple)

    @property
    def names(self) -> list[str]:
        return [self.key, self.display_name, *self.aliases]


def normalise_name(raw: str) -> str:
    """Case-fold, NFC-normalise and collapse whitespace in a room name."""
    return " ".join(unicodedata.normalize("NFC", raw).casefold().split())


class RoomRegistry:
    """Known rooms, in declaration order.

    `match` resolves a raw name with the following precedence, the first tier
    producing a candidate wins:

    1. exact match on a key, display name or alias;
    2. case-insensitive, whitespace-collapsed match on the same names;
    3. the room with the shortest name containing the raw name;
    4. the room with the longest name contained in the raw name;

    and ties inside a tier go to the room declared first.
    """

    def __init__(self, rooms: Iterable[Room] = ()):
        self._rooms: dict[RoomKey, Room] = {}
        for room in rooms:
            self.register(room)

    @classmethod
    def from_mapping(cls, rooms: Mapping[str, Mapping | tuple]) -> "RoomRegistry":
        """Build a registry from ``{key: {display_name, aliases}}`` or
        ``{key: (display_name, aliases)}``."""
        registry = cls()
        for key, entry in rooms.items():
            if isinstance(entry, Mapping):
                display_name = entry.get("display_name") or key
                aliases = entry.get("aliases") or ()
            else:
                display_name, aliases = entry
            registry.register(
                Room(key=key, display_name=display_name, aliases=tuple(aliases))
            )
        return registry

    def __contains__(self, key: object) -> bool:
        return key in self._rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(self._rooms.values())

    def __len__(self) -> int:
        return len(self._rooms)

    @property
    def keys(self) -> list[RoomKey]:
        return list(self._rooms)

    def get(self, key: RoomKey) -> Room:
        try:
            return self._rooms[key]
        except KeyError:
            raise UnknownRoomError(key, self.suggest(key))

    def display_name(self, key: RoomKey) -> str:
        room = self._rooms.get(key)
        return room.display_name if room is not None else key

    def register(self, room: Room) -> Room:
        """Add a room, returning the registered instance. Registering an existing
        key is a no-op."""
        existing = self._rooms.get(room.key)
        if existing is not None:
            return existing
        self._rooms[room.key] = room
        logger.debug(f"Registered room {room.key!r}")
        return room

    def discover(self, names: Iterable[str]) -> list[RoomKey]:
        """Register the rooms found in meeting data that nothing in the registry
        matches. Returns the keys added, in first-seen order."""
        added = []
        for name in names:
            if not isinstance(name, str) or not name.strip():
                continue
            if self.match(name) is not None:
                continue
            key = " ".join(name.split())
            self.register(Room(key=key, display_name=key))
            added.append(key)
        if added:
            logger.info(f"Discovered {len(added)} new room(s): {added}")
        return added

    def match(self, raw: str | None) -> RoomKey | None:
        if raw is None or not isinstance(raw, str):
            return None
        stripped = raw.strip()
        if not stripped:
            return None
        for room in self._rooms.values():
            if stripped in room.names:
                return room.key
        target = normalise_name(stripped)
        normalised = {
            room.key: [normalise_name(name) for name in room.names]
            for room in self._rooms.values()
        }
        for key, names in normalised.items():
            if target in names:
                return key
        # containment tiers; min() keeps the first declared room on ties
        containing = [
            (min(len(n) for n in names if target in n), i, key)
            for i, (key, names) in enumerate(normalised.items())
            if any(target in n for n in names)
        ]
        if containing:
            return min(containing)[2]
        contained = [
            (len(target) - max(len(n) for n in names if n in target), i, key)
            for i, (key, names) in enumerate(normalised.items())
            if any(n in target for n in names)
        ]
        if contained:
            return min(contained)[2]
        return None

    def resolve(self, raw: str) -> RoomKey:
        """Like `match`, but raises `UnknownRoomError` when nothing matches."""
        key = self.match(raw)
        if key is None:
            raise UnknownRoomError(raw, self.suggest(raw))
        return key

    def same_room(self, first: str, second: str) -> bool:
        first_key, second_key = self.match(first), self.match(second)
        if first_key is None or second_key is None:
            return normalise_name(first) == normalise_name(second)
        return first_key == second_key

    def suggest(self, raw: str) -> RoomKey | None:
        """The closest registered room according to `fuzz.WRatio`, if any is close enough."""
        if not isinstance(raw, str) or not self._rooms:
            return None
        choices = {
            name: room.key for room in self._rooms.values() for name in room.names
        }
        best = process.extractOne(
            raw,
            list(choices),
            scorer=fuzz.WRatio,
            processor=utils.default_process,
            score_cutoff=SUGGESTION_CUTOFF,
        )
        if best is None:
            return None
        return choices[best[0]]
