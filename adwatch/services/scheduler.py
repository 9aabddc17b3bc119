"""Runs user sync schedules that are due and advances their next run time."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.models.integration import Integration, IntegrationStatus, Provider
from adwatch.models.sync import SyncSchedule
from adwatch.services.google_sync import sync_google_data
from adwatch.services.meta_sync import sync_meta_campaigns, sync_meta_metrics

logger = logging.getLogger(__name__)

FREQUENCY_STEPS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}


def resolve_sync_function(provider: str, sync_type: str):
    if provider == Provider.META.value:
        return {
            "campaigns": sync_meta_campaigns,
            "full": sync_meta_campaigns,
            "metrics": sync_meta_metrics,
        }.get(sync_type)
    if provider == Provider.GOOGLE.value:
        return sync_google_data
    return None


def next_run_after(now: datetime, frequency: str) -> datetime:
    return now + FREQUENCY_STEPS.get(frequency, FREQUENCY_STEPS["daily"])


async def process_scheduled_syncs(db: AsyncSession, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(SyncSchedule).where(
            SyncSchedule.is_active == True,
            or_(SyncSchedule.next_sync_at.is_(None), SyncSchedule.next_sync_at <= now),
        )
    )
    # Plain values: the syncs below commit and roll back on their own
    due = [(s.id, s.user_id, s.provider, s.sync_type, s.frequency) for s in result.scalars().all()]
    logger.info("Found %d sync schedules due", len(due))

    results = []
    for schedule_id, user_id, provider, sync_type, frequency in due:
        sync = resolve_sync_function(provider, sync_type)
        if not sync:
            logger.warning("Unknown sync configuration %s/%s on schedule %s", provider, sync_type, schedule_id)
            continue

        integration = (
            await db.execute(
                select(Integration).where(
                    Integration.user_id == user_id,
                    Integration.provider == provider,
                    Integration.status == IntegrationStatus.ACTIVE.value,
                )
            )
        ).scalars().first()
        if not integration:
            logger.info("No active %s integration for user %s, skipping schedule %s", provider, user_id, schedule_id)
            continue

        try:
            outcome = await sync(db, integration)
        except Exception as exc:
            logger.exception("Scheduled %s failed for schedule %s", sync.__name__, schedule_id)
            results.append({"schedule_id": str(schedule_id), "success": False, "error": str(exc)})
            continue

        await db.execute(
            update(SyncSchedule)
            .where(SyncSchedule.id == schedule_id)
            .values(last_sync_at=now, next_sync_at=next_run_after(now, frequency))
        )
        await db.commit()
        results.append({
            "schedule_id": str(schedule_id),
            "success": True,
            "function": sync.__name__,
            "result": outcome,
        })

    return {"processed": len(results), "results": results}
