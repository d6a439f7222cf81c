"""Celery tasks for running and draining wp-cron dispatches."""

import logging
from celery import shared_task

from all_sites_cron.coordination.errors import LockedError, RateLimitedError
from all_sites_cron.tasks.celery_app import celery_app  # noqa: F401

logger = logging.getLogger(__name__)


@shared_task(name="all_sites_cron.tasks.cron_tasks.drain_cron_queue", bind=True)
def drain_cron_queue(self):
    """
    Pop and process at most one queued wp-cron run (Celery task wrapper).
    Scheduled every minute by Celery Beat.
    """
    from all_sites_cron.services.runtime import get_queue_adapter

    try:
        result = get_queue_adapter().drain()
    except Exception as e:
        logger.error(f"❌ Error draining wp-cron queue: {e}", exc_info=True)
        raise

    if result.count:
        logger.info(f"✅ Drained wp-cron job: {result.count} sites, success={result.success}")
    return result.to_dict()


@shared_task(name="all_sites_cron.tasks.cron_tasks.run_all_sites_cron", bind=True)
def run_all_sites_cron(self):
    """
    Run one coordinated wp-cron dispatch with the lock and cooldown enforced.
    Meant for a Beat schedule in deployments without an external pinger.
    """
    from all_sites_cron.services.runtime import get_orchestrator

    logger.info("⏰ Starting all-sites wp-cron task...")
    try:
        result = get_orchestrator().execute()
    except (LockedError, RateLimitedError) as e:
        logger.info(f"Skipped all-sites wp-cron run: {e}")
        return {"success": False, "skipped": True, "message": str(e)}

    return result.to_dict()
