"""Budget alert monitor.

For every ACTIVE campaign with a daily budget, sums all synced spend and
compares it to the budget. Existing active alerts get their
``current_amount`` refreshed; each crossed threshold without an active
alert gets a new one. The partial unique index on
(campaign_id, threshold_amount) WHERE is_active makes the insert a no-op
when another run got there first.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.config import get_settings
from adwatch.errors import NotFoundError
from adwatch.models.alert import CampaignAlert
from adwatch.models.campaign import Campaign
from adwatch.models.metric import Metric
from adwatch.services.sync_logs import finish_sync_log, start_sync_log

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def alert_type_for(threshold: int) -> str:
    return f"budget_{threshold}_percent"


def threshold_amount_for(budget: Decimal, threshold: int) -> Decimal:
    return (budget * threshold / 100).quantize(CENT)


def _eligible_campaigns():
    return select(
        Campaign.id, Campaign.name, Campaign.daily_budget, Campaign.lifetime_budget,
    ).where(
        Campaign.status == "ACTIVE",
        Campaign.daily_budget.is_not(None),
    )


async def list_eligible_campaign_ids(db: AsyncSession) -> list[uuid.UUID]:
    result = await db.execute(_eligible_campaigns().with_only_columns(Campaign.id))
    return list(result.scalars().all())


async def _insert_alert(
    db: AsyncSession, campaign_id: uuid.UUID, threshold: int,
    threshold_amount: Decimal, spend: Decimal, now: datetime,
) -> bool:
    """Insert unless an active alert for this threshold exists. True if inserted."""
    insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = (
        insert(CampaignAlert)
        .values(
            id=uuid.uuid4(),
            campaign_id=campaign_id,
            alert_type=alert_type_for(threshold),
            threshold_amount=threshold_amount,
            current_amount=spend,
            is_active=True,
            triggered_at=now,
            created_at=now,
        )
        .on_conflict_do_nothing()
        .returning(CampaignAlert.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None


async def evaluate_campaign(
    db: AsyncSession,
    campaign_id: uuid.UUID,
    budget: Decimal,
    thresholds: list[int],
    now: datetime,
) -> tuple[int, int]:
    """Update then create alerts for one campaign; returns (created, updated)."""
    spend_total = (
        await db.execute(
            select(func.coalesce(func.sum(Metric.spend), 0)).where(Metric.campaign_id == campaign_id)
        )
    ).scalar_one()
    spend = Decimal(str(spend_total)).quantize(CENT)
    percentage = spend / budget * 100

    result = await db.execute(
        update(CampaignAlert)
        .where(CampaignAlert.campaign_id == campaign_id, CampaignAlert.is_active == True)
        .values(current_amount=spend)
        .execution_options(synchronize_session=False)
    )
    updated = result.rowcount or 0

    created = 0
    for threshold in thresholds:
        if percentage < threshold:
            continue
        amount = threshold_amount_for(budget, threshold)
        if await _insert_alert(db, campaign_id, threshold, amount, spend, now):
            logger.info("Campaign %s crossed %d%% (spend %s / budget %s)", campaign_id, threshold, spend, budget)
            created += 1
    return created, updated


async def monitor_budgets(
    db: AsyncSession,
    now: datetime | None = None,
    campaign_ids: list[uuid.UUID] | None = None,
) -> dict:
    """Run the monitor over every eligible campaign (or the given subset).

    A failure on one campaign is logged and skipped; only a failure loading
    the campaign list aborts the run.
    """
    now = now or datetime.now(timezone.utc)
    thresholds = get_settings().alert_threshold_list
    log_id = await start_sync_log(db, "monitor-campaign-budgets")

    try:
        query = _eligible_campaigns()
        if campaign_ids is not None:
            query = query.where(Campaign.id.in_(campaign_ids))
        campaigns = (await db.execute(query)).all()
    except Exception as exc:
        await db.rollback()
        await finish_sync_log(db, log_id, "error", error_message=str(exc)[:500])
        raise

    logger.info("[%s] Checking budgets for %d active campaigns", log_id, len(campaigns))
    created = updated = errors = 0

    for row in campaigns:
        budget = Decimal(str(row.daily_budget or row.lifetime_budget or 0))
        if budget <= 0:
            logger.info("[%s] Skipping campaign %s: no budget set", log_id, row.name)
            continue
        try:
            c, u = await evaluate_campaign(db, row.id, budget, thresholds, now)
            await db.commit()
        except Exception:
            await db.rollback()
            errors += 1
            logger.exception("[%s] Budget check failed for campaign %s", log_id, row.id)
            continue
        created += c
        updated += u

    await finish_sync_log(
        db, log_id, "warning" if errors else "success",
        campaigns=len(campaigns),
        error_message=f"{errors} campaigns failed" if errors else None,
    )
    logger.info("[%s] Budget monitoring done: %d alerts created, %d updated", log_id, created, updated)
    return {
        "campaigns_checked": len(campaigns),
        "alerts_created": created,
        "alerts_updated": updated,
        "timestamp": now.isoformat(),
    }


async def list_alerts(
    db: AsyncSession,
    campaign_id: uuid.UUID | None = None,
    active_only: bool = True,
    limit: int = 100,
) -> list[CampaignAlert]:
    query = select(CampaignAlert).order_by(CampaignAlert.triggered_at.desc()).limit(limit)
    if campaign_id:
        query = query.where(CampaignAlert.campaign_id == campaign_id)
    if active_only:
        query = query.where(CampaignAlert.is_active == True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def resolve_alert(db: AsyncSession, alert_id: uuid.UUID, now: datetime | None = None) -> CampaignAlert:
    """Manually close an alert. Spend dropping below a threshold never does this."""
    alert = await db.get(CampaignAlert, alert_id)
    if not alert:
        raise NotFoundError(f"Alert {alert_id} not found")
    if alert.is_active:
        alert.is_active = False
        alert.resolved_at = now or datetime.now(timezone.utc)
        await db.commit()
    return alert
