"""
Scheduled Job Configuration

Configures the periodic snapshot archiving job using APScheduler:
- Metric snapshot archive daily at SNAPSHOT_ARCHIVE_HOUR:SNAPSHOT_ARCHIVE_MINUTE
  (server-local time), covering the previous server-observed day

Execution Context:
    The scheduler runs in-process on the caller's asyncio event loop. The
    embedding application starts and stops it around its own lifetime.

Limitations:
    - Single instance only: every replica running a scheduler triggers the
      job. Duplicate runs are harmless because snapshot upserts are
      idempotent, but they waste work.
    - Day boundaries use settings.DEFAULT_TIMEZONE since no per-user zone
      is stored alongside the events.

Usage:
    start_scheduler()  # On app startup
    stop_scheduler()   # On app shutdown

    # Manual trigger for testing:
    from study_metrics.services.scheduler import trigger_job_now
    trigger_job_now("metrics_snapshot_archive")
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from study_metrics.config import settings
from study_metrics.errors import CollaboratorError
from study_metrics.services.clock import Clock, SystemClock, server_today
from study_metrics.services.metrics.event_source import SqlEventSource
from study_metrics.services.metrics.service import MetricsService
from study_metrics.services.metrics.timezone import local_day_bounds_utc

logger = logging.getLogger(__name__)

ARCHIVE_JOB_ID = "metrics_snapshot_archive"

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def archive_previous_day(db: AsyncSession, clock: Optional[Clock] = None) -> int:
    """
    Snapshot yesterday's metrics for every user active yesterday.

    "Yesterday" is the day before the server-observed date, matching the
    default date of MetricsService.create_snapshot(). A user whose snapshot
    fails is logged and skipped; no row is written for them, and the session
    is rolled back so the remaining users still run.

    Args:
        db: SQLAlchemy async database session.
        clock: Source of "now"; defaults to the system clock.

    Returns:
        Number of snapshots written.
    """
    clock = clock or SystemClock()
    target = server_today(clock) - timedelta(days=1)
    zone = settings.DEFAULT_TIMEZONE
    start, end = local_day_bounds_utc(target, zone)

    user_ids = await SqlEventSource(db).list_active_user_ids(start, end)
    service = MetricsService.from_session(db, clock=clock)

    count = 0
    for user_id in user_ids:
        try:
            await service.create_snapshot(user_id, target.isoformat(), zone)
            count += 1
        except CollaboratorError as e:
            logger.error(f"Failed to archive metrics for user {user_id} on {target}: {e}")
            await db.rollback()

    logger.info(f"Archived {count}/{len(user_ids)} metric snapshots for {target}")
    return count


async def trigger_snapshot_archive() -> None:
    """Run the archive job in its own database session."""
    # Deferred import: avoid creating the engine until the job runs.
    from study_metrics.db.base import async_session_maker

    async with async_session_maker() as db:
        await archive_previous_day(db)


def setup_scheduled_jobs() -> None:
    """Configure all scheduled jobs."""

    scheduler.add_job(
        trigger_snapshot_archive,
        CronTrigger(
            hour=settings.SNAPSHOT_ARCHIVE_HOUR,
            minute=settings.SNAPSHOT_ARCHIVE_MINUTE,
        ),
        id=ARCHIVE_JOB_ID,
        name="Metric Snapshot Archive",
        replace_existing=True,
        misfire_grace_time=3600,  # Allow 1 hour grace period
    )

    logger.info(
        f"Scheduled jobs configured: snapshot archive daily at "
        f"{settings.SNAPSHOT_ARCHIVE_HOUR:02d}:{settings.SNAPSHOT_ARCHIVE_MINUTE:02d}"
    )


def start_scheduler() -> None:
    """Start the scheduler and configure jobs."""
    if not settings.SNAPSHOT_ARCHIVE_ENABLED:
        logger.info("Snapshot archiving disabled, scheduler not started")
        return

    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    setup_scheduled_jobs()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    if not scheduler.running:
        logger.warning("Scheduler not running")
        return

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")


def get_scheduled_jobs() -> list[dict]:
    """Get list of scheduled jobs with their next run times."""
    jobs = []
    for job in scheduler.get_jobs():
        next_run = getattr(job, "next_run_time", None)
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            }
        )
    return jobs


def trigger_job_now(job_id: str) -> bool:
    """
    Manually trigger a scheduled job immediately.

    Args:
        job_id: ID of the job to trigger

    Returns:
        True if triggered successfully
    """
    job = scheduler.get_job(job_id)
    if job:
        job.modify(next_run_time=datetime.now())
        logger.info(f"Manually triggered job: {job_id}")
        return True

    logger.warning(f"Job not found: {job_id}")
    return False
