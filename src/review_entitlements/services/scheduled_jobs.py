"""
Scheduled Jobs Service
Manages background jobs for feature cache cleanup and quota window resets
"""
import logging
from typing import Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None


def get_scheduler() -> BackgroundScheduler:
    """
    Get or create the background scheduler instance

    Returns:
        BackgroundScheduler instance
    """
    global _scheduler

    if _scheduler is None:
        _scheduler = BackgroundScheduler(
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': 600
            }
        )

    return _scheduler


def start_scheduler():
    """
    Start the background scheduler and register all jobs
    """
    scheduler = get_scheduler()

    if not scheduler.running:
        scheduler.add_job(
            func=run_feature_cache_cleanup_job,
            trigger=CronTrigger(minute='*/10'),
            id='feature_cache_cleanup',
            name='Expired Feature Cache Cleanup',
            replace_existing=True
        )
        logger.info("Registered feature cache cleanup job (every 10 minutes)")

        scheduler.add_job(
            func=run_quota_reset_job,
            trigger=CronTrigger(minute=0),  # Every hour at minute 0
            id='quota_usage_reset',
            name='Quota Usage Window Reset',
            replace_existing=True
        )
        logger.info("Registered quota usage reset job (hourly)")

        scheduler.start()
        logger.info("Background scheduler started")
    else:
        logger.warning("Scheduler already running")


def stop_scheduler():
    """
    Stop the background scheduler
    """
    global _scheduler
    scheduler = get_scheduler()

    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler stopped")
    _scheduler = None


def run_feature_cache_cleanup_job() -> int:
    """
    Drop expired entries from the feature cache

    Redis expires keys on its own, so this only does work for the in-memory cache.
    """
    from .feature_cache import get_feature_cache

    try:
        removed = get_feature_cache().cleanup_expired()
        if removed:
            logger.info(f"Feature cache cleanup removed {removed} expired entries")
        return removed
    except Exception as e:
        logger.error(f"Feature cache cleanup job failed: {e}", exc_info=True)
        return 0


def run_quota_reset_job() -> int:
    """
    Reset quota usage rows whose daily/monthly window has passed
    """
    from ..db.engine import SessionLocal
    from .quota_service import QuotaService

    db = SessionLocal()
    try:
        return QuotaService(db).reset_expired_usage()
    except Exception as e:
        logger.error(f"Quota reset job failed: {e}", exc_info=True)
        db.rollback()
        return 0
    finally:
        db.close()
