#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Events published by the store, the scheduler and the filter, and the
synchronous bus that delivers them."""

import logging
from collections.abc import Callable
from enum import StrEnum, auto
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from roomboard.aliases import RoomKey
from roomboard.engine import RoomState, RoomStatus
from roomboard.exceptions import ErrorKind
from roomboard.records import Meeting
from roomboard.time_utils import Instant

logger = logging.getLogger(__name__)

E = TypeVar("E")
Listener = Callable[[E], None]
Unsubscribe = Callable[[], None]


class StoreEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    revision: int


class StoreReplaced(StoreEvent):
    count: int


class StoreInserted(StoreEvent):
    meeting: Meeting


class StoreUpdated(StoreEvent):
    meeting: Meeting
    previous: Meeting


class StoreDeleted(StoreEvent):
    meeting: Meeting


class RoomStateChanged(BaseModel):
    """Published when the status, the active meeting or the next meeting of a
    room differs from what was last published."""

    model_config = ConfigDict(frozen=True)

    room: RoomKey
    status: RoomStatus
    active: Meeting | None = None
    next: Meeting | None = None
    at: Instant
    previous_status: RoomStatus | None = None

    @classmethod
    def from_state(
        cls, state: RoomState, previous: RoomState | None = None
    ) -> "RoomStateChanged":
        return cls(
            room=state.room,
            status=state.status,
            active=state.active,
            next=state.next,
            at=state.at,
            previous_status=previous.status if previous is not None else None,
        )


class RoomFilterChanged(BaseModel):
    model_config = ConfigDict(frozen=True)

    filter: str
    previous: str


class NotificationKind(StrEnum):
    INFO = auto()
    SUCCESS = auto()
    WARN = auto()
    ERROR = auto()


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: NotificationKind
    message: str
    error_kind: ErrorKind | None = None


class EventBus(Generic[E]):
    """Delivers events synchronously to listeners, in registration order.

    A failing listener does not prevent the others from running: its exception
    is logged and returned by `publish`.
    """

    def __init__(self, name: str = "events"):
        self.name = name
        self._listeners: dict[int, Listener] = {}
        self._next_token = 0

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Listener) -> Unsubscribe:
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    def publish(self, event: E) -> list[Exception]:
        failures = []
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception as e:
                logger.exception(f"Listener {listener!r} on {self.name} failed")
                failures.append(e)
        return failures

    def clear(self) -> None:
        self._listeners.clear()
