#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Periodic recomputation of room states.

The scheduler owns one asyncio task which ticks every `period` seconds, or
sooner when a refresh signal arrives. Each tick reads a snapshot of the store,
asks the engine for every room state and publishes a `RoomStateChanged`
event for each room whose state differs from what was published last."""

import asyncio
import contextlib
import datetime
import logging

from roomboard.aliases import RoomKey, SignalName
from roomboard.constants import (
    DEFAULT_DEBOUNCE,
    DEFAULT_TICK_PERIOD,
    DEFAULT_TZ_OFFSET_HOURS,
    DEFAULT_WARN_INTERVAL,
    MEETING_DATA_UPDATED,
    REFRESH_SIGNALS,
)
from roomboard.engine import RoomState, StateEngine
from roomboard.events import (
    EventBus,
    Listener,
    Notification,
    NotificationKind,
    RoomStateChanged,
    StoreEvent,
    Unsubscribe,
)
from roomboard.exceptions import ErrorKind
from roomboard.store import MeetingStore
from roomboard.time_utils import Clock, Instant, system_clock

logger = logging.getLogger(__name__)


class Scheduler:
    """Drives the state engine.

    Parameters
    ----------
    store
        Source of the meetings. The scheduler subscribes to it while running.
    engine
        Computes the room states.
    clock
        Injected wall clock.
    notifications
        Bus on which tick failures are reported as warnings.
    period
        Seconds between two ticks.
    debounce
        Seconds during which successive refresh signals are merged into a
        single recomputation.
    warn_interval
        Minimum number of seconds between two failure warnings.
    tz_offset_hours
        Local timezone offset.
    """

    def __init__(
        self,
        store: MeetingStore,
        engine: StateEngine,
        clock: Clock = system_clock,
        notifications: EventBus[Notification] | None = None,
        period: float = DEFAULT_TICK_PERIOD,
        debounce: float = DEFAULT_DEBOUNCE,
        warn_interval: float = DEFAULT_WARN_INTERVAL,
        tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS,
    ):
        if period <= 0:
            raise ValueError(f"Tick period must be positive, got {period}")
        self._store = store
        self._engine = engine
        self._clock = clock
        self._notifications = notifications
        self.period = period
        self.debounce = debounce
        self.warn_interval = warn_interval
        self.tz_offset_hours = tz_offset_hours
        self._events: EventBus[RoomStateChanged] = EventBus("room-state")
        self._published: dict[RoomKey, RoomState] = {}
        self._task: asyncio.Task | None = None
        self._wakeup: asyncio.Event | None = None
        self._store_subscription: Unsubscribe | None = None
        self._last_warning: datetime.datetime | None = None
        self._warned = False
        self.tick_count = 0
        self.failure_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def states(self) -> dict[RoomKey, RoomState]:
        """The last published state of every room."""
        return dict(self._published)

    def subscribe(self, listener: Listener[RoomStateChanged]) -> Unsubscribe:
        return self._events.subscribe(listener)

    def tick(self) -> list[RoomStateChanged]:
        """Recompute every room state and publish the changes.

        Never raises: a failing computation is logged, the previously published
        states are kept and a warning is emitted at most once per
        `warn_interval`.
        """
        self.tick_count += 1
        now = None
        try:
            now = self._clock()
            instant = Instant.from_datetime(now, self.tz_offset_hours)
            states = self._engine.all_room_states(self._store.snapshot(), instant)
        except Exception:
            logger.exception("Room state computation failed, keeping last states")
            self._on_failure(now)
            return []
        changes = []
        for room, state in states.items():
            previous = self._published.get(room)
            if state.same_as(previous):
                continue
            self._published[room] = state
            changes.append(RoomStateChanged.from_state(state, previous))
        failed = False
        for change in changes:
            if self._events.publish(change):
                failed = True
        if failed:
            self._on_failure(now)
        if changes:
            logger.debug(f"Published {len(changes)} room state change(s)")
        return changes

    def _on_failure(self, now: datetime.datetime | None) -> None:
        """Count a failed tick and warn, at most once per `warn_interval`. `now` is
        unset when the clock itself failed, in which case only the first failure
        is notified."""
        self.failure_count += 1
        if self._warned and (
            now is None
            or self._last_warning is not None
            and now - self._last_warning < datetime.timedelta(seconds=self.warn_interval)
        ):
            return
        self._warned = True
        if now is not None:
            self._last_warning = now
        if self._notifications is not None:
            self._notifications.publish(
                Notification(
                    kind=NotificationKind.WARN,
                    message="Room status could not be refreshed, showing the last known state",
                    error_kind=ErrorKind.INTERNAL,
                )
            )

    def handle_signal(self, name: SignalName) -> None:
        """Force a recomputation. While running, bursts of signals are coalesced
        into one tick; when stopped, the tick happens immediately."""
        if name not in REFRESH_SIGNALS:
            logger.warning(f"Ignoring unknown refresh signal {name!r}")
            return
        if self.running and self._wakeup is not None:
            self._wakeup.set()
        else:
            self.tick()

    def _on_store_event(self, event: StoreEvent) -> None:
        self.handle_signal(MEETING_DATA_UPDATED)

    def start(self) -> None:
        """Start ticking. Must be called from within a running event loop."""
        if self.running:
            return
        self._wakeup = asyncio.Event()
        self._store_subscription = self._store.subscribe(self._on_store_event)
        self.tick()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Scheduler started, ticking every {self.period}s")

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.period)
            except asyncio.TimeoutError:
                pass
            else:
                await asyncio.sleep(self.debounce)
            self._wakeup.clear()
            self.tick()

    async def stop(self) -> None:
        """Cancel the timer task and release the store subscription."""
        if self._store_subscription is not None:
            self._store_subscription()
            self._store_subscription = None
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info("Scheduler stopped")
