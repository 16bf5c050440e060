"""
Scheduler setup.

Registers the periodic chain core tasks on an AsyncIOScheduler. Every job
runs single-instance with coalescing, so a slow run never piles up
overlapping executions.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from jobs.tasks.event_sync_task import run_event_sync
from jobs.tasks.maintenance import (
    run_cache_sweep,
    run_pending_action_sweep,
    run_rate_window_cleanup,
)
from memberchain.config.settings import Settings


def create_scheduler(settings: Settings) -> AsyncIOScheduler:
    """
    Create scheduler with all periodic jobs.

    Args:
        settings: Application settings (intervals)

    Returns:
        Configured, not yet started scheduler
    """
    scheduler = AsyncIOScheduler(
        job_defaults={"max_instances": 1, "coalesce": True, "misfire_grace_time": 30}
    )

    scheduler.add_job(
        run_event_sync,
        "interval",
        seconds=settings.event_poll_interval,
        id="event_sync",
        name="Event synchronization",
    )
    scheduler.add_job(
        run_cache_sweep,
        "interval",
        seconds=settings.cache_sweep_interval,
        id="cache_sweep",
        name="Cache sweep",
    )
    scheduler.add_job(
        run_rate_window_cleanup,
        "interval",
        seconds=settings.rpc_cleanup_interval,
        id="rate_window_cleanup",
        name="Rate limiter cleanup",
    )
    scheduler.add_job(
        run_pending_action_sweep,
        "interval",
        seconds=settings.pending_sweep_interval,
        id="pending_action_sweep",
        name="Pending action timeout sweep",
    )

    logger.info(f"Scheduler configured with {len(scheduler.get_jobs())} jobs")
    return scheduler
