#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Wires the registry, store, engine, scheduler, booking workflow and filter
into a dashboard, and keeps the store in sync with the record server."""

import asyncio
import contextlib
import datetime
import logging
from collections.abc import Iterable

from omegaconf import DictConfig
from pydantic import BaseModel, ConfigDict

from roomboard.aliases import RawRecord, RoomKey, SignalName
from roomboard.booking import BookingWorkflow
from roomboard.collaborators.auth import PasswordGate
from roomboard.collaborators.persistence import HttpMeetingRepository, MeetingRepository
from roomboard.collaborators.presentation import Presenter
from roomboard.collaborators.sensors import LightController, SensorHub
from roomboard.config import build_registry, load_config, working_hours
from roomboard.engine import RoomState, RoomStatus, StateEngine
from roomboard.events import (
    EventBus,
    Listener,
    Notification,
    NotificationKind,
    RoomFilterChanged,
    RoomStateChanged,
    Unsubscribe,
)
from roomboard.exceptions import RoomboardError
from roomboard.filters import RoomFilter
from roomboard.records import canonical_keys
from roomboard.rooms import RoomRegistry
from roomboard.scheduler import Scheduler
from roomboard.store import MeetingStore
from roomboard.time_utils import Clock, Instant, now_local, system_clock

logger = logging.getLogger(__name__)


class RoomSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    room: RoomKey
    display_name: str
    status: RoomStatus
    label: str
    active_title: str | None = None
    active_until: str | None = None
    next_title: str | None = None
    next_start: str | None = None
    upcoming_count: int = 0


class DashboardStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    at: Instant
    online: bool
    last_sync: datetime.datetime | None = None
    filter: str
    meeting_count: int
    rooms: list[RoomSummary]


class Dashboard:
    """Handles returned by `create_dashboard`.

    Attributes
    ----------
    store, engine, scheduler, booking, filter
        The core components.
    registry
        Known rooms.
    sensors
        Latest telemetry per room and light control.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        store: MeetingStore,
        engine: StateEngine,
        scheduler: Scheduler,
        booking: BookingWorkflow,
        filter: RoomFilter,
        persistence: MeetingRepository,
        notifications: EventBus[Notification],
        sensors: SensorHub,
        clock: Clock = system_clock,
        tz_offset_hours: float = 7,
        sync_interval: float = 0,
        sync_timeout: float = 10,
        discover_rooms: bool = True,
    ):
        self.registry = registry
        self.store = store
        self.engine = engine
        self.scheduler = scheduler
        self.booking = booking
        self.filter = filter
        self.persistence = persistence
        self.notifications = notifications
        self.sensors = sensors
        self._clock = clock
        self.tz_offset_hours = tz_offset_hours
        self.sync_interval = sync_interval
        self.sync_timeout = sync_timeout
        self.discover_rooms = discover_rooms
        self.online = False
        self.last_sync: datetime.datetime | None = None
        self._sync_task: asyncio.Task | None = None
        self._connection_known = False

    # subscriptions

    def subscribe_room_state(self, listener: Listener[RoomStateChanged]) -> Unsubscribe:
        return self.scheduler.subscribe(listener)

    def subscribe_filter(self, listener: Listener[RoomFilterChanged]) -> Unsubscribe:
        return self.filter.subscribe(listener)

    def subscribe_notifications(self, listener: Listener[Notification]) -> Unsubscribe:
        return self.notifications.subscribe(listener)

    def attach(self, presenter: Presenter) -> Unsubscribe:
        """Subscribe a presenter to every dashboard event. Returns a callable
        releasing all three subscriptions."""
        handles = [
            self.subscribe_room_state(presenter.on_room_state),
            self.subscribe_filter(presenter.on_filter),
            self.subscribe_notifications(presenter.on_notification),
        ]

        def detach() -> None:
            for handle in handles:
                handle()

        return detach

    def notify(self, kind: NotificationKind, message: str) -> None:
        self.notifications.publish(Notification(kind=kind, message=message))

    # data

    def instant(self) -> Instant:
        return now_local(self._clock, self.tz_offset_hours)

    def load_records(self, records: Iterable[RawRecord]) -> int:
        """Replace the store contents, registering unknown rooms first when room
        discovery is enabled."""
        records = list(records)
        if self.discover_rooms:
            self.registry.discover(
                str(room)
                for room in (canonical_keys(r).get("room") for r in records)
                if room
            )
        return self.store.load_all(records)

    def _set_online(self, online: bool) -> None:
        if self._connection_known and online == self.online:
            return
        if self._connection_known:
            if online:
                self.notify(NotificationKind.SUCCESS, "Connection to the record server restored")
            else:
                self.notify(
                    NotificationKind.WARN,
                    "Record server unreachable, showing cached meetings",
                )
        self._connection_known = True
        self.online = online

    async def refresh(self) -> int | None:
        """Reload every record from the server. On failure the cached store is
        kept and a warning is notified. Returns the number of records loaded."""
        try:
            records = await asyncio.wait_for(
                asyncio.to_thread(self.persistence.list_meetings), self.sync_timeout
            )
        except (RoomboardError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not load meetings from the record server: {e}")
            self._set_online(False)
            return None
        self._set_online(True)
        try:
            count = self.load_records(records)
        except RoomboardError as e:
            logger.warning(f"Rejected meetings from the record server: {e}")
            self.notify(NotificationKind.ERROR, f"Invalid meeting data received: {e}")
            return None
        self.last_sync = self._clock()
        return count

    async def _sync_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sync_interval)
            await self.refresh()

    # lifecycle

    async def start(self, load: bool = True) -> None:
        """Load the records, start the scheduler and the periodic sync."""
        if load:
            count = await self.refresh()
            if count is not None:
                logger.info(f"Dashboard started with {count} meeting(s)")
        self.scheduler.start()
        if self.sync_interval > 0 and self._sync_task is None:
            self._sync_task = asyncio.get_running_loop().create_task(self._sync_forever())

    async def stop(self) -> None:
        task, self._sync_task = self._sync_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.scheduler.stop()

    def signal(self, name: SignalName) -> None:
        self.scheduler.handle_signal(name)

    def room_states(self, instant: Instant | None = None) -> dict[RoomKey, RoomState]:
        instant = instant or self.instant()
        return self.engine.all_room_states(self.store.snapshot(), instant)

    def status(self) -> DashboardStatus:
        """A snapshot of every room, for status pages and the console."""
        instant = self.instant()
        meetings = self.store.snapshot()
        states = self.engine.all_room_states(meetings, instant)
        summaries = []
        for room, state in states.items():
            upcoming = [
                m
                for m in meetings
                if m.room == room
                and m.date == instant.date
                and not m.is_closed
                and m.start_minutes > instant.minutes
            ]
            summaries.append(
                RoomSummary(
                    room=room,
                    display_name=self.registry.display_name(room),
                    status=state.status,
                    label=state.status.label,
                    active_title=state.active.title if state.active else None,
                    active_until=f"{state.active.end_time:%H:%M}" if state.active else None,
                    next_title=state.next.title if state.next else None,
                    next_start=f"{state.next.start_time:%H:%M}" if state.next else None,
                    upcoming_count=len(upcoming),
                )
            )
        return DashboardStatus(
            at=instant,
            online=self.online,
            last_sync=self.last_sync,
            filter=self.filter.current,
            meeting_count=len(meetings),
            rooms=summaries,
        )


def create_dashboard(
    cfg: DictConfig | None = None,
    clock: Clock | None = None,
    persistence: MeetingRepository | None = None,
    light_controller: LightController | None = None,
    notifications: EventBus[Notification] | None = None,
) -> Dashboard:
    """Build a dashboard from configuration.

    Parameters
    ----------
    cfg
        A `roomboard.config.DashboardConfig`; the packaged defaults when unset.
    clock
        Injected wall clock, the system clock when unset.
    persistence
        Record server, an `HttpMeetingRepository` on ``cfg.api`` when unset.
    light_controller
        Receives light commands routed through the sensor hub.
    notifications
        Bus for user notifications, created when unset.
    """
    cfg = cfg if cfg is not None else load_config()
    clock = clock or system_clock
    tz = cfg.tz_offset_hours
    registry = build_registry(cfg)
    if persistence is None:
        persistence = HttpMeetingRepository(
            cfg.api.base_url,
            timeout=cfg.api.timeout,
            retries=cfg.api.retries,
            backoff=cfg.api.backoff,
        )
    notifications = notifications if notifications is not None else EventBus("notifications")
    store = MeetingStore(registry, clock=clock, tz_offset_hours=tz)
    engine = StateEngine(registry)
    scheduler = Scheduler(
        store,
        engine,
        clock=clock,
        notifications=notifications,
        period=cfg.scheduler.period,
        debounce=cfg.scheduler.debounce,
        warn_interval=cfg.scheduler.warn_interval,
        tz_offset_hours=tz,
    )
    gate = None
    if cfg.auth.enabled:
        gate = PasswordGate(
            cfg.auth.password,
            session_hours=cfg.auth.session_hours,
            max_attempts=cfg.auth.max_attempts,
            lockout_minutes=cfg.auth.lockout_minutes,
            clock=clock,
            tz_offset_hours=tz,
        )
    booking = BookingWorkflow(
        store,
        persistence,
        notifications=notifications,
        clock=clock,
        timeout=cfg.api.timeout,
        enforce_working_hours=cfg.booking.enforce_working_hours,
        working_hours=working_hours(cfg),
        gate=gate,
        tz_offset_hours=tz,
    )
    return Dashboard(
        registry=registry,
        store=store,
        engine=engine,
        scheduler=scheduler,
        booking=booking,
        filter=RoomFilter(registry),
        persistence=persistence,
        notifications=notifications,
        sensors=SensorHub(registry, controller=light_controller, clock=clock),
        clock=clock,
        tz_offset_hours=tz,
        sync_interval=cfg.scheduler.sync_interval,
        sync_timeout=cfg.api.timeout,
        discover_rooms=cfg.discover_rooms,
    )
