#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from pathlib import Path

import hydra
from omegaconf import DictConfig

from roomboard.collaborators.persistence import HttpMeetingRepository
from roomboard.config import ExportConfig, build_registry, with_schema
from roomboard.export import ExportPeriod, export_filename, export_meetings, write_export
from roomboard.importers import normalise_rows
from roomboard.records import canonical_keys
from roomboard.time_utils import now_local, parse_date

logger = logging.getLogger(__name__)


@hydra.main(
    config_name="export_schedule",
    config_path="pkg://roomboard.configs",
    version_base=None,
)
def main(cfg: DictConfig):
    cfg = with_schema(cfg, ExportConfig)
    registry = build_registry(cfg)
    repository = HttpMeetingRepository(
        cfg.api.base_url, timeout=cfg.api.timeout, retries=cfg.api.retries
    )
    records = repository.list_meetings()
    if cfg.discover_rooms:
        rooms = (canonical_keys(r).get("room") for r in records)
        registry.discover(str(room) for room in rooms if room)
    result = normalise_rows(records, registry, tz_offset_hours=cfg.tz_offset_hours)
    for row_error in result.errors:
        logger.warning(f"Skipping record {row_error.row}: {row_error.error}")
    instant = now_local(tz_offset_hours=cfg.tz_offset_hours)
    period = ExportPeriod(cfg.period)
    reference = parse_date(cfg.date, cfg.tz_offset_hours) if cfg.date else instant.date
    frame = export_meetings(result.meetings, period, instant, registry, reference=reference)
    path = Path(cfg.output_dir) / export_filename(period, reference, f".{cfg.format}")
    write_export(frame, path)
    logger.info(f"Exported {frame.height} meeting(s) to {path}")


if __name__ == "__main__":
    main()
