"""Meta Ads synchronization: accounts, campaigns, ad sets, ads and daily metrics."""

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import httpx
from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.config import get_settings
from adwatch.errors import (
    AccessRevokedError,
    InactiveAccountError,
    NotFoundError,
    ProviderAPIError,
    ProviderAuthError,
    ResourceGoneError,
    ValidationError,
)
from adwatch.models.campaign import Ad, AdSet, Campaign
from adwatch.models.integration import AdAccount, Integration, Provider
from adwatch.models.metric import Metric, MetricBreakdown
from adwatch.services.integrations import mark_integration_expired
from adwatch.services.meta_api import BREAKDOWNS, MetaAPIService
from adwatch.services.sync_logs import finish_sync_log, start_sync_log
from adwatch.services.token_vault import get_valid_access_token
from adwatch.services.upsert import upsert

logger = logging.getLogger(__name__)

ACCOUNT_DELAY_SECONDS = 0.1

RATE_COLUMNS = ("ctr", "cpc", "cost_per_result", "cost_per_message")
RATE_PLACES = Decimal("0.0001")


# ---------------------------------------------------------------------------
# Campaign structure
# ---------------------------------------------------------------------------

async def sync_meta_campaigns(db: AsyncSession, integration: Integration) -> dict:
    """Pull ad accounts, campaigns, ad sets and ads for one Meta integration.

    Stops early (keeping what was saved) once the run exceeds
    ``sync_time_budget_seconds``. A rejected session flips the integration
    to expired and aborts the run.
    """
    settings = get_settings()
    meta = MetaAPIService()
    integration_id = integration.id
    stats = {"accounts": 0, "campaigns": 0, "ad_sets": 0, "ads": 0, "errors": 0, "partial": False}

    log_id = await start_sync_log(db, "sync-meta-campaigns", integration_id)
    deadline = time.monotonic() + settings.sync_time_budget_seconds
    logger.info("[%s] Starting Meta campaign sync for integration %s", log_id, integration_id)

    try:
        token = await get_valid_access_token(db, integration_id)
        try:
            accounts = await meta.list_ad_accounts(token)
        except ProviderAuthError:
            await mark_integration_expired(db, integration_id)
            raise
        logger.info("[%s] Found %d Meta ad accounts", log_id, len(accounts))

        for account in accounts:
            if time.monotonic() > deadline:
                logger.warning("[%s] Time budget reached, saving partial progress", log_id)
                stats["partial"] = True
                break
            try:
                await _sync_account_structure(db, meta, token, integration_id, account, stats, deadline, log_id)
                await db.commit()
            except ProviderAuthError:
                await db.rollback()
                await mark_integration_expired(db, integration_id)
                raise
            except Exception:
                await db.rollback()
                stats["errors"] += 1
                logger.exception("[%s] Failed to sync account %s", log_id, account.get("id"))
            await asyncio.sleep(ACCOUNT_DELAY_SECONDS)

        await finish_sync_log(
            db, log_id, "success",
            accounts=stats["accounts"], campaigns=stats["campaigns"],
        )
    except Exception as exc:
        await db.rollback()
        await finish_sync_log(
            db, log_id, "error",
            accounts=stats["accounts"], campaigns=stats["campaigns"],
            error_message=str(exc)[:500], error_details={"type": type(exc).__name__},
        )
        raise

    logger.info(
        "[%s] Meta campaign sync done: %d accounts, %d campaigns, %d ad sets, %d ads",
        log_id, stats["accounts"], stats["campaigns"], stats["ad_sets"], stats["ads"],
    )
    return stats


async def _sync_account_structure(
    db: AsyncSession,
    meta: MetaAPIService,
    token: str,
    integration_id: uuid.UUID,
    account: dict,
    stats: dict,
    deadline: float,
    log_id,
) -> None:
    ad_account = await upsert(
        db, AdAccount,
        {"integration_id": integration_id, "account_id": account["id"]},
        {
            "provider": Provider.META.value,
            "account_name": account.get("name") or account["id"],
            "currency": account.get("currency") or "BRL",
            "is_active": account.get("account_status") == 1,
        },
    )
    stats["accounts"] += 1

    campaign_map: dict[str, uuid.UUID] = {}
    for c in await meta.list_campaigns(token, account["id"]):
        key = {"ad_account_id": ad_account.id, "campaign_id": c.pop("campaign_id")}
        campaign = await upsert(db, Campaign, key, {**c, "sync_enabled": True})
        campaign_map[key["campaign_id"]] = campaign.id
        stats["campaigns"] += 1

    if time.monotonic() > deadline:
        stats["partial"] = True
        return

    # Ad sets and ads are best-effort; a failed listing leaves campaigns intact
    try:
        adsets = await meta.list_account_adsets(token, account["id"])
    except ProviderAuthError:
        raise
    except (ProviderAPIError, httpx.HTTPError) as exc:
        logger.error("[%s] Could not list ad sets for %s: %s", log_id, account["id"], exc)
        adsets = []

    adset_map: dict[str, uuid.UUID] = {}
    for a in adsets:
        parent = campaign_map.get(a.pop("campaign_id"))
        if not parent:
            continue
        key = {"campaign_id": parent, "ad_set_id": a.pop("ad_set_id")}
        ad_set = await upsert(db, AdSet, key, a)
        adset_map[key["ad_set_id"]] = ad_set.id
        stats["ad_sets"] += 1

    if time.monotonic() > deadline or not adset_map:
        return

    try:
        ads = await meta.list_account_ads(token, account["id"])
    except ProviderAuthError:
        raise
    except (ProviderAPIError, httpx.HTTPError) as exc:
        logger.error("[%s] Could not list ads for %s: %s", log_id, account["id"], exc)
        ads = []

    for ad in ads:
        parent = adset_map.get(ad.pop("adset_id"))
        if not parent:
            continue
        await upsert(db, Ad, {"ad_set_id": parent, "ad_id": ad.pop("ad_id")}, ad)
        stats["ads"] += 1


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def _window(now: datetime | None = None) -> tuple[date, date]:
    until = (now or datetime.now(timezone.utc)).date()
    return until - timedelta(days=get_settings().sync_lookback_days), until


async def _fetch_campaign_insights(
    meta: MetaAPIService, token: str, campaign_id: str, since: date, until: date, log_id,
) -> tuple[list[dict], list[dict]]:
    insights = await meta.get_ad_insights(token, campaign_id, since, until)
    breakdowns: list[dict] = []
    if not insights:
        return insights, breakdowns
    for breakdown in BREAKDOWNS:
        try:
            breakdowns.extend(await meta.get_breakdown_insights(token, campaign_id, breakdown, since, until))
        except ProviderAuthError:
            raise
        except (ProviderAPIError, httpx.HTTPError) as exc:
            logger.error("[%s] %s breakdown failed for campaign %s: %s", log_id, breakdown, campaign_id, exc)
    return insights, breakdowns


def merge_insights(rows: list[dict]) -> dict:
    """Collapse same-day insights of ads with no local row into one metric row.

    Counts and amounts are summed; rates are recomputed from the totals.
    """
    values = {k: v for k, v in rows[0].items() if k not in ("ad_id", "date")}
    if len(rows) == 1:
        return values

    for row in rows[1:]:
        for column in values:
            if column not in RATE_COLUMNS:
                values[column] += row[column]

    spend = values["spend"]
    values["ctr"] = _rate(Decimal(values["clicks"]) * 100, values["impressions"])
    values["cpc"] = _rate(spend, values["clicks"])
    values["cost_per_result"] = _rate(spend, values["results"])
    values["cost_per_message"] = _rate(spend, values["messages"])
    return values


def _rate(amount: Decimal, count: int) -> Decimal:
    if not count:
        return Decimal("0")
    return (amount / count).quantize(RATE_PLACES)


async def _ad_id_map(db: AsyncSession, campaign_ids: list[uuid.UUID]) -> dict[str, uuid.UUID]:
    if not campaign_ids:
        return {}
    result = await db.execute(
        select(Ad.ad_id, Ad.id)
        .join(AdSet, Ad.ad_set_id == AdSet.id)
        .where(AdSet.campaign_id.in_(campaign_ids))
    )
    return {ad_id: pk for ad_id, pk in result.all()}


async def _sync_campaign_metrics(
    db: AsyncSession,
    meta: MetaAPIService,
    token: str,
    integration_id: uuid.UUID,
    campaigns: list[Campaign],
    log_id,
    now: datetime | None = None,
) -> dict:
    """Fetch insights in small concurrent batches, then write them sequentially.

    Gone campaigns are soft-disabled; any other per-campaign failure is
    counted and the run moves on.
    """
    settings = get_settings()
    since, until = _window(now)
    ad_map = await _ad_id_map(db, [c.id for c in campaigns])
    stats = {
        "campaigns_processed": 0, "metrics_synced": 0, "breakdowns_synced": 0,
        "campaigns_disabled": 0, "errors": 0,
    }
    session_expired = False
    batch_size = max(settings.sync_batch_size, 1)

    for start in range(0, len(campaigns), batch_size):
        batch = campaigns[start:start + batch_size]
        results = await asyncio.gather(
            *(_fetch_campaign_insights(meta, token, c.campaign_id, since, until, log_id) for c in batch),
            return_exceptions=True,
        )

        for campaign, outcome in zip(batch, results):
            if isinstance(outcome, ResourceGoneError):
                logger.warning("[%s] Campaign %s no longer exists, disabling sync", log_id, campaign.campaign_id)
                campaign.sync_enabled = False
                stats["campaigns_disabled"] += 1
                continue
            if isinstance(outcome, ProviderAuthError):
                session_expired = True
            if isinstance(outcome, BaseException):
                logger.error("[%s] Insights failed for campaign %s: %s", log_id, campaign.campaign_id, outcome)
                stats["errors"] += 1
                continue

            insights, breakdowns = outcome
            unmapped: dict[date, list[dict]] = defaultdict(list)
            for row in insights:
                if row["date"] is None:
                    continue
                ad_pk = ad_map.get(row["ad_id"])
                if ad_pk is None:
                    unmapped[row["date"]].append(row)
                    continue
                values = {k: v for k, v in row.items() if k not in ("ad_id", "date")}
                await upsert(db, Metric, {"campaign_id": campaign.id, "date": row["date"], "ad_id": ad_pk}, values)
                stats["metrics_synced"] += 1

            for day, rows in unmapped.items():
                key = {"campaign_id": campaign.id, "date": day, "ad_id": None}
                await upsert(db, Metric, key, merge_insights(rows))
                stats["metrics_synced"] += 1

            for row in breakdowns:
                if row["date"] is None:
                    continue
                key = {
                    "campaign_id": campaign.id,
                    "date": row["date"],
                    "breakdown_type": row["breakdown_type"],
                    "breakdown_value": row["breakdown_value"],
                }
                values = {k: row[k] for k in ("impressions", "clicks", "spend", "conversions")}
                await upsert(db, MetricBreakdown, key, values)
                stats["breakdowns_synced"] += 1

            stats["campaigns_processed"] += 1

        await db.commit()
        if start + batch_size < len(campaigns):
            await asyncio.sleep(settings.sync_batch_delay_seconds)

    if session_expired:
        await mark_integration_expired(db, integration_id)
    return stats


async def sync_meta_metrics(db: AsyncSession, integration: Integration, now: datetime | None = None) -> dict:
    """Daily ad-level metrics for the integration's sync-enabled campaigns, ACTIVE first."""
    settings = get_settings()
    integration_id = integration.id
    log_id = await start_sync_log(db, "sync-meta-metrics", integration_id)
    logger.info("[%s] Starting Meta metrics sync for integration %s", log_id, integration_id)

    try:
        token = await get_valid_access_token(db, integration_id)
        result = await db.execute(
            select(Campaign)
            .join(AdAccount, Campaign.ad_account_id == AdAccount.id)
            .where(
                AdAccount.integration_id == integration_id,
                Campaign.sync_enabled == True,
            )
            .order_by(case((Campaign.status == "ACTIVE", 0), else_=1), Campaign.name)
            .limit(settings.sync_max_campaigns)
        )
        campaigns = list(result.scalars().all())
        logger.info("[%s] %d campaigns to sync", log_id, len(campaigns))

        stats = await _sync_campaign_metrics(db, MetaAPIService(), token, integration_id, campaigns, log_id, now)
        await finish_sync_log(
            db, log_id, "warning" if stats["errors"] else "success",
            campaigns=stats["campaigns_processed"], metrics=stats["metrics_synced"],
            error_message=f"{stats['errors']} campaigns failed" if stats["errors"] else None,
        )
    except Exception as exc:
        await db.rollback()
        await finish_sync_log(
            db, log_id, "error",
            error_message=str(exc)[:500], error_details={"type": type(exc).__name__},
        )
        raise

    logger.info(
        "[%s] Meta metrics sync done: %d metrics, %d breakdowns, %d disabled, %d errors",
        log_id, stats["metrics_synced"], stats["breakdowns_synced"],
        stats["campaigns_disabled"], stats["errors"],
    )
    return stats


async def sync_meta_account_metrics(
    db: AsyncSession,
    account_id: str,
    user_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> dict:
    """Metrics for the ACTIVE/PAUSED campaigns of a single ad account.

    The account is read first; if the token can no longer read it the
    account is deactivated and ``AccessRevokedError`` is raised.
    """
    if not account_id:
        raise ValidationError("account_id is required")

    query = select(AdAccount).where(AdAccount.account_id == account_id, AdAccount.provider == Provider.META.value)
    if user_id:
        query = query.join(Integration, AdAccount.integration_id == Integration.id).where(Integration.user_id == user_id)
    account = (await db.execute(query)).scalars().first()
    if not account:
        raise NotFoundError(f"Ad account {account_id} not found")
    if not account.is_active:
        raise InactiveAccountError(f"Ad account {account_id} is inactive")

    integration_id = account.integration_id
    account_pk = account.id
    meta = MetaAPIService()
    log_id = await start_sync_log(db, "sync-meta-account-metrics", integration_id)
    logger.info("[%s] Starting metrics sync for account %s", log_id, account_id)

    try:
        token = await get_valid_access_token(db, integration_id)
        try:
            await meta.get_ad_account(token, account_id)
        except (ResourceGoneError, ProviderAuthError) as exc:
            logger.warning("[%s] Lost access to account %s: %s", log_id, account_id, exc)
            account.is_active = False
            await db.commit()
            raise AccessRevokedError(f"Access to ad account {account_id} was revoked") from exc

        result = await db.execute(
            select(Campaign).where(
                Campaign.ad_account_id == account_pk,
                Campaign.sync_enabled == True,
                Campaign.status.in_(("ACTIVE", "PAUSED")),
            )
        )
        campaigns = list(result.scalars().all())
        stats = await _sync_campaign_metrics(db, meta, token, integration_id, campaigns, log_id, now)
        await finish_sync_log(
            db, log_id, "warning" if stats["errors"] else "success",
            campaigns=stats["campaigns_processed"], metrics=stats["metrics_synced"],
            error_message=f"{stats['errors']} campaigns failed" if stats["errors"] else None,
        )
    except Exception as exc:
        await db.rollback()
        await finish_sync_log(
            db, log_id, "error",
            error_message=str(exc)[:500], error_details={"type": type(exc).__name__},
        )
        raise

    stats["account_id"] = account_id
    return stats
