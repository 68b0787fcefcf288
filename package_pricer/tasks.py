"""tasks.py – APScheduler schedule.

• daily at 03:00 UTC – re-price every package config in ``PRICER_CONFIG_DIR``
  whose ``auto_refresh_enabled`` is set
"""

from __future__ import annotations

import logging
import os
import pathlib
from typing import Dict, List, Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from .batch_runner import run_package
from .config import FlightHotelConfig, Settings
from .errors import UpstreamAccessError
from .models import RunResult

CONFIG_DIR = os.getenv("PRICER_CONFIG_DIR", "packages")

logger = logging.getLogger(__name__)


def load_auto_refresh_configs(config_dir: str = CONFIG_DIR) -> List[FlightHotelConfig]:
    """Return the package configs of *config_dir* flagged for auto-refresh."""
    configs = []
    for path in sorted(pathlib.Path(config_dir).glob("*.json")):
        try:
            config = FlightHotelConfig.from_json(path)
        except (OSError, ValueError) as exc:
            logger.warning("Skipping %s: %s", path.name, exc)
            continue
        if config.auto_refresh_enabled:
            configs.append(config)
    return configs


def refresh_all(
    config_dir: str = CONFIG_DIR,
    settings: Optional[Settings] = None,
    db_path: Optional[str] = None,
) -> Dict[int, RunResult]:
    """Re-price every auto-refresh package; one failing package does not stop the rest."""
    results: Dict[int, RunResult] = {}
    configs = load_auto_refresh_configs(config_dir)
    logger.info("Auto-refresh: %d package(s) in %s", len(configs), config_dir)
    for config in configs:
        try:
            results[config.package_id] = run_package(
                config, settings, db_path=db_path
            )
        except UpstreamAccessError as exc:
            logger.error("Package %s: %s", config.package_id, exc)
            results[config.package_id] = RunResult(
                success=False, prices_calculated=0, errors=[str(exc)]
            )
    return results


def build_scheduler(
    config_dir: str = CONFIG_DIR, db_path: Optional[str] = None
) -> BlockingScheduler:
    sched = BlockingScheduler(timezone="UTC")
    sched.add_job(
        refresh_all,
        "cron",
        hour=3,
        minute=0,
        kwargs={"config_dir": config_dir, "db_path": db_path},
        id="auto_refresh",
    )
    return sched


if __name__ == "__main__":
    build_scheduler().start()
