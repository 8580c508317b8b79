#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Structured configuration of the dashboard. The packaged
``configs/dashboard.yaml`` provides the defaults, merged on top of the
dataclass schemas below so that typos in overrides fail loudly."""

import datetime
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Optional

from omegaconf import MISSING, DictConfig, OmegaConf

from roomboard.constants import (
    DEFAULT_DEBOUNCE,
    DEFAULT_PERSISTENCE_TIMEOUT,
    DEFAULT_ROOMS,
    DEFAULT_SYNC_INTERVAL,
    DEFAULT_TICK_PERIOD,
    DEFAULT_TZ_OFFSET_HOURS,
    DEFAULT_WARN_INTERVAL,
)
from roomboard.rooms import Room, RoomRegistry
from roomboard.time_utils import parse_time, to_time


@dataclass
class RoomConfig:
    key: str = MISSING
    display_name: Optional[str] = None
    aliases: list[str] = field(default_factory=list)


def _default_rooms() -> list[RoomConfig]:
    return [
        RoomConfig(key=key, display_name=display_name, aliases=list(aliases))
        for key, (display_name, aliases) in DEFAULT_ROOMS.items()
    ]


@dataclass
class ApiConfig:
    base_url: str = "http://localhost:3000"
    timeout: float = DEFAULT_PERSISTENCE_TIMEOUT
    retries: int = 3
    backoff: float = 1.0


@dataclass
class SchedulerConfig:
    period: float = DEFAULT_TICK_PERIOD
    debounce: float = DEFAULT_DEBOUNCE
    warn_interval: float = DEFAULT_WARN_INTERVAL
    sync_interval: float = DEFAULT_SYNC_INTERVAL


@dataclass
class BookingConfig:
    enforce_working_hours: bool = False
    working_hours_start: str = "07:00"
    working_hours_end: str = "19:00"


@dataclass
class AuthConfig:
    enabled: bool = True
    password: str = "1234"
    session_hours: float = 8
    max_attempts: int = 3
    lockout_minutes: float = 15


@dataclass
class RunConfig:
    duration: Optional[float] = None
    """Seconds to run for, forever when unset."""
    show_meetings: bool = True


@dataclass
class DashboardConfig:
    rooms: list[RoomConfig] = field(default_factory=_default_rooms)
    tz_offset_hours: float = DEFAULT_TZ_OFFSET_HOURS
    discover_rooms: bool = True
    api: ApiConfig = field(default_factory=ApiConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    booking: BookingConfig = field(default_factory=BookingConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    run: RunConfig = field(default_factory=RunConfig)
    debug: bool = False


@dataclass
class ImportConfig(DashboardConfig):
    source: str = MISSING
    sheet: Optional[str] = None
    push: bool = False
    """Replace the server records with the imported ones."""


@dataclass
class ExportConfig(DashboardConfig):
    period: str = "day"
    """One of ``day``, ``week`` or ``month``."""
    date: Optional[str] = None
    """Reference day, today when unset."""
    output_dir: str = "."
    format: str = "xlsx"


def get_config_path() -> str:
    return str(resources.files("roomboard.configs") / ".")


def load_config(
    path: Path | str | None = None,
    overrides: list[str] | None = None,
    schema: type = DashboardConfig,
) -> DictConfig:
    """Merge the schema defaults, a YAML file (the packaged defaults when `path`
    is unset) and dotlist overrides such as ``["api.base_url=http://host"]``."""
    if path is None:
        path = Path(get_config_path()) / "dashboard.yaml"
    file_cfg = OmegaConf.load(path)
    file_cfg.pop("defaults", None)
    cfg = OmegaConf.merge(
        OmegaConf.structured(schema),
        file_cfg,
        OmegaConf.from_dotlist(overrides or []),
    )
    return cfg


def with_schema(cfg: DictConfig, schema: type = DashboardConfig) -> DictConfig:
    """Validate a config composed by hydra against a schema."""
    plain = OmegaConf.to_container(cfg, resolve=True)
    plain.pop("hydra", None)
    return OmegaConf.merge(OmegaConf.structured(schema), plain)


def build_registry(cfg: DictConfig) -> RoomRegistry:
    return RoomRegistry(
        Room(
            key=room.key,
            display_name=room.display_name or room.key,
            aliases=tuple(room.aliases),
        )
        for room in cfg.rooms
    )


def working_hours(cfg: DictConfig) -> tuple[datetime.time, datetime.time]:
    return (
        to_time(parse_time(cfg.booking.working_hours_start)),
        to_time(parse_time(cfg.booking.working_hours_end)),
    )
