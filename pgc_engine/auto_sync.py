#!/usr/bin/env python3
"""
Scheduled job runner for the PGC tour engine.

Run manually: python -m pgc_engine.auto_sync live
Schedule with cron (UTC):
    */2 * * * *  python -m pgc_engine.auto_sync live
    0 4 * * *    python -m pgc_engine.auto_sync standings
    0 10 * * 1   python -m pgc_engine.auto_sync groups
"""

import sys
import logging
from pathlib import Path
from typing import List, Optional

from .config import JOB_SCHEDULES, get_config
from .coordinator import SyncCoordinator
from .database import Database
from .models import JobResult

logger = logging.getLogger(__name__)

JOBS = tuple(JOB_SCHEDULES)


def setup_logging(log_path: Optional[Path] = None):
    """Log to the data directory's sync.log and to the console."""
    if log_path is None:
        log_path = get_config().data_dir / "sync.log"
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler()
        ]
    )


def run_job(job: str, coordinator: Optional[SyncCoordinator] = None) -> JobResult:
    """Run one scheduled job by name."""
    if job not in JOBS:
        raise ValueError(f"Unknown job '{job}'. Choose from: {', '.join(JOBS)}")

    coordinator = coordinator or SyncCoordinator()
    logger.info(f"Starting {job} job (schedule: {JOB_SCHEDULES[job]})")
    if job == "live":
        return coordinator.run_live_sync()
    if job == "standings":
        return coordinator.run_standings()
    return coordinator.run_groups()


def main(argv: Optional[List[str]] = None) -> int:
    """Cron entry point. Exit status is non-zero only when a job failed."""
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1 or argv[0] not in JOBS:
        print(f"usage: python -m pgc_engine.auto_sync {{{'|'.join(JOBS)}}}", file=sys.stderr)
        return 2

    setup_logging()
    config = get_config()
    problems = config.validate_config(require_api_key=argv[0] != "standings")
    if problems:
        for problem in problems:
            logger.error(problem)
        return 1

    try:
        purged = Database(config.db_path).clear_expired_cache()
        if purged:
            logger.info(f"Purged {purged} expired cache entries")
        result = run_job(argv[0])
    except Exception as e:
        logger.exception(f"{argv[0]} job crashed: {e}")
        return 1

    logger.info(result.summary())
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
