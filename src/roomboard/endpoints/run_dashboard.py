#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import asyncio
import logging

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.console import Console

from roomboard import __version__
from roomboard.app import Dashboard, create_dashboard
from roomboard.collaborators.presentation import ConsolePresenter
from roomboard.config import DashboardConfig, with_schema
from roomboard.display import display_room_states, meetings_table

logger = logging.getLogger(__name__)


async def run(dashboard: Dashboard, duration: float | None, show_meetings: bool) -> None:
    console = Console()
    detach = dashboard.attach(ConsolePresenter(dashboard.registry, console))
    try:
        await dashboard.start()
        display_room_states(dashboard.scheduler.states, dashboard.registry, console)
        if show_meetings:
            instant = dashboard.instant()
            console.print(
                meetings_table(dashboard.store.list(date=instant.date), instant)
            )
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await dashboard.stop()
        detach()


@hydra.main(
    config_name="dashboard",
    config_path="pkg://roomboard.configs",
    version_base=None,
)
def main(cfg: DictConfig):
    cfg = with_schema(cfg, DashboardConfig)
    logger.info(f"Room dashboard {__version__}")
    if cfg.debug:
        logger.info(OmegaConf.to_yaml(cfg, resolve=True))
    dashboard = create_dashboard(cfg)
    try:
        asyncio.run(run(dashboard, cfg.run.duration, cfg.run.show_meetings))
    except KeyboardInterrupt:
        logger.info("Dashboard stopped by user")


if __name__ == "__main__":
    main()
