"""Celery tasks driving the synchronizers from beat."""

import asyncio
import logging

from adwatch.celery_app import celery_app
from adwatch.database import async_session
from adwatch.services import google_sync, scheduler

logger = logging.getLogger(__name__)


async def _process_scheduled_syncs() -> dict:
    async with async_session() as db:
        return await scheduler.process_scheduled_syncs(db)


async def _orchestrate_google_sync() -> dict:
    async with async_session() as db:
        return await google_sync.orchestrate_google_sync(db)


@celery_app.task(name="adwatch.tasks.sync_tasks.process_scheduled_syncs")
def process_scheduled_syncs():
    """Celery beat task: run every sync schedule that is due."""
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(_process_scheduled_syncs())
        logger.info("[celery-sync] Scheduled syncs processed: %d", result["processed"])
        return result
    finally:
        loop.close()


@celery_app.task(name="adwatch.tasks.sync_tasks.orchestrate_google_sync")
def orchestrate_google_sync():
    """Celery beat task: data + metrics sync for all active Google integrations."""
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(_orchestrate_google_sync())
        logger.info(
            "[celery-sync] Google orchestration: %d/%d integrations succeeded",
            result["succeeded"], result["integrations"],
        )
        return result
    finally:
        loop.close()
