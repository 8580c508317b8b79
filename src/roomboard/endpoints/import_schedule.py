#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging

import hydra
from omegaconf import DictConfig, OmegaConf
from rich.console import Console

from roomboard.collaborators.persistence import HttpMeetingRepository
from roomboard.config import ImportConfig, build_registry, with_schema
from roomboard.display import meetings_table
from roomboard.importers import read_schedule
from roomboard.store import find_overlaps
from roomboard.time_utils import now_local

logger = logging.getLogger(__name__)


@hydra.main(
    config_name="import_schedule",
    config_path="pkg://roomboard.configs",
    version_base=None,
)
def main(cfg: DictConfig):
    cfg = with_schema(cfg, ImportConfig)
    if cfg.debug:
        logger.info(OmegaConf.to_yaml(cfg, resolve=True))
    registry = build_registry(cfg)
    result = read_schedule(
        cfg.source,
        registry,
        sheet=cfg.sheet,
        discover_rooms=cfg.discover_rooms,
        tz_offset_hours=cfg.tz_offset_hours,
    )
    for row_error in result.errors:
        logger.warning(f"Row {row_error.row}: {row_error.error}")
    for first, second in find_overlaps(result.meetings):
        logger.warning(
            f"{first.id} and {second.id} overlap in {first.room} on {first.date}"
        )
    Console().print(
        meetings_table(result.meetings, now_local(tz_offset_hours=cfg.tz_offset_hours))
    )
    if not cfg.push:
        logger.info(f"Read {len(result.meetings)} meeting(s), not pushed (push=false)")
        return
    if not result.ok:
        logger.error("Refusing to push a schedule with invalid rows")
        return
    repository = HttpMeetingRepository(
        cfg.api.base_url,
        timeout=cfg.api.timeout,
        retries=cfg.api.retries,
        backoff=cfg.api.backoff,
    )
    count = repository.replace_all(m.to_payload() for m in result.meetings)
    logger.info(f"Replaced the server schedule with {count} meeting(s)")


if __name__ == "__main__":
    main()
