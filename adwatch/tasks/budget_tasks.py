"""Budget monitor as a worker pool.

The beat task only lists eligible campaigns and fans them out in batches on
the ``monitoring`` queue; each batch worker evaluates its campaigns with one
transaction per campaign.
"""

import asyncio
import logging
import uuid

from adwatch.celery_app import celery_app
from adwatch.config import get_settings
from adwatch.database import async_session
from adwatch.services import budget_monitor

logger = logging.getLogger(__name__)


async def _list_campaign_ids() -> list[str]:
    async with async_session() as db:
        return [str(cid) for cid in await budget_monitor.list_eligible_campaign_ids(db)]


async def _check_batch(campaign_ids: list[str]) -> dict:
    async with async_session() as db:
        return await budget_monitor.monitor_budgets(
            db, campaign_ids=[uuid.UUID(cid) for cid in campaign_ids]
        )


@celery_app.task(name="adwatch.tasks.budget_tasks.monitor_campaign_budgets")
def monitor_campaign_budgets():
    """Celery beat task: enqueue eligible campaigns in batches."""
    loop = asyncio.new_event_loop()
    try:
        campaign_ids = loop.run_until_complete(_list_campaign_ids())
    finally:
        loop.close()

    batch_size = max(get_settings().monitor_batch_size, 1)
    batches = 0
    for start in range(0, len(campaign_ids), batch_size):
        check_campaign_budget_batch.delay(campaign_ids[start:start + batch_size])
        batches += 1

    logger.info("[celery-monitor] Dispatched %d campaigns in %d batches", len(campaign_ids), batches)
    return {"campaigns": len(campaign_ids), "batches": batches}


@celery_app.task(name="adwatch.tasks.budget_tasks.check_campaign_budget_batch")
def check_campaign_budget_batch(campaign_ids: list[str]):
    """Evaluate one batch of campaigns against their budget thresholds."""
    loop = asyncio.new_event_loop()
    try:
        result = loop.run_until_complete(_check_batch(campaign_ids))
        logger.info(
            "[celery-monitor] Batch of %d: %d alerts created, %d updated",
            len(campaign_ids), result["alerts_created"], result["alerts_updated"],
        )
        return result
    finally:
        loop.close()
