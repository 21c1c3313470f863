"""
Interval scheduler for the cluster performance job.

At most one cycle runs at a time; runs missed while a cycle is still going are
collapsed into one.
"""

import os
import sys
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from clusterperf.config import settings
from clusterperf.log_config import logger
from jobs.update_cluster_performance import run_cycle

JOB_ID = "cluster_performance"


def run_scheduled_cycle(lookback_days: Optional[int] = None) -> None:
    """Run one cycle, logging instead of raising so the scheduler keeps going."""
    try:
        stats = run_cycle(lookback_days=lookback_days)
    except Exception as e:
        logger.exception(f"Cluster performance cycle failed: {e}")
        return

    if stats["errors"] > 0:
        logger.warning(f"Cluster performance cycle completed with {stats['errors']} errors")


def build_scheduler(lookback_days: Optional[int] = None, run_now: bool = True) -> BlockingScheduler:
    """Scheduler with the performance job registered but not started."""
    job_options = {}
    if run_now:
        job_options["next_run_time"] = datetime.now(timezone.utc)

    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_job(
        run_scheduled_cycle,
        trigger=IntervalTrigger(minutes=settings.performance_schedule_minutes),
        id=JOB_ID,
        name="Cluster Performance Update",
        kwargs={"lookback_days": lookback_days},
        max_instances=1,
        coalesce=True,
        replace_existing=True,
        **job_options,
    )
    return scheduler


def run_scheduler(lookback_days: Optional[int] = None) -> None:
    """Block running the performance job every performance_schedule_minutes."""
    scheduler = build_scheduler(lookback_days=lookback_days)
    logger.info(
        f"Added Cluster Performance job (runs every {settings.performance_schedule_minutes} minutes)"
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    run_scheduler()
