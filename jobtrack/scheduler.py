"""
APScheduler job runner for periodic inbox sync.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from jobtrack.config import settings
from jobtrack.core.errors import SyncConflictError
from jobtrack.core.logging import get_logger

log = get_logger(__name__)

# Global scheduler instance
_scheduler: BackgroundScheduler | None = None


def sync_job(user_id: str | None = None):
    """Scheduled job to sync one user's inbox.

    Shares the process-wide single-flight guard with the HTTP endpoint, so
    a tick that lands during a manual sync is skipped.
    """
    from jobtrack.processors.sync import SyncProcessor

    user_id = user_id or settings.scheduler_user_id
    log.info("scheduled_job_starting", job="sync")
    try:
        processor = SyncProcessor()
        try:
            summary = processor.sync(user_id)
        finally:
            processor.close()
        log.info("scheduled_job_complete", job="sync", **summary.to_dict())
    except SyncConflictError:
        log.info("scheduled_job_skipped", job="sync", reason="sync already running")
    except Exception as e:
        log.error("scheduled_job_error", job="sync", error=str(e))


def start_scheduler(interval_minutes: int | None = None) -> BackgroundScheduler:
    """
    Start the background sync scheduler.

    Args:
        interval_minutes: How often to sync (default from settings)

    Returns:
        The scheduler instance
    """
    global _scheduler

    if _scheduler is not None:
        log.warning("scheduler_already_running")
        return _scheduler

    if not settings.scheduler_user_id:
        log.warning("scheduler_user_missing", reason="SCHEDULER_USER_ID is empty, every run will be rejected")

    interval_minutes = interval_minutes or settings.scheduler_interval_minutes

    _scheduler = BackgroundScheduler()
    _scheduler.add_job(
        sync_job,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id="sync_inbox",
        name="Sync inbox",
        replace_existing=True,
        max_instances=1,
    )

    _scheduler.start()
    log.info("scheduler_started", interval_minutes=interval_minutes)

    return _scheduler


def stop_scheduler():
    """Stop the background scheduler."""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        log.info("scheduler_stopped")


def get_scheduler() -> BackgroundScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler
