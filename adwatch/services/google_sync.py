"""Google Ads synchronization: customers, campaigns, ad groups and daily metrics."""

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.config import get_settings
from adwatch.errors import ConfigurationError, ProviderAuthError, ValidationError
from adwatch.models.campaign import AdSet, Campaign
from adwatch.models.integration import AdAccount, Integration, IntegrationStatus, Provider
from adwatch.models.metric import Metric
from adwatch.services.google_ads_api import GoogleAdsAPIService
from adwatch.services.integrations import mark_integration_expired
from adwatch.services.sync_logs import finish_sync_log, start_sync_log
from adwatch.services.token_vault import get_valid_access_token
from adwatch.services.upsert import upsert

logger = logging.getLogger(__name__)

DEVELOPER_TOKEN_MISSING = "GOOGLE_ADS_DEVELOPER_TOKEN not configured"


async def sync_google_data(db: AsyncSession, integration: Integration) -> dict:
    """Accessible customers -> ad accounts, then their campaigns and ad groups."""
    settings = get_settings()
    integration_id = integration.id
    stats = {"accounts": 0, "campaigns": 0, "ad_sets": 0, "errors": 0}
    log_id = await start_sync_log(db, "sync-google-ads-data", integration_id)

    if not settings.google_ads_developer_token:
        await finish_sync_log(db, log_id, "error", error_message=DEVELOPER_TOKEN_MISSING)
        raise ConfigurationError(DEVELOPER_TOKEN_MISSING)

    google = GoogleAdsAPIService()
    logger.info("[%s] Starting Google Ads data sync for integration %s", log_id, integration_id)

    try:
        token = await get_valid_access_token(db, integration_id)
        try:
            customer_ids = await google.list_accessible_customers(token)
        except ProviderAuthError:
            await mark_integration_expired(db, integration_id)
            raise
        logger.info("[%s] Found %d Google Ads customers", log_id, len(customer_ids))

        for customer_id in customer_ids:
            try:
                await _sync_customer(db, google, token, integration_id, customer_id, stats)
                await db.commit()
            except ProviderAuthError:
                await db.rollback()
                await mark_integration_expired(db, integration_id)
                raise
            except Exception:
                await db.rollback()
                stats["errors"] += 1
                logger.exception("[%s] Failed to sync customer %s", log_id, customer_id)

        await finish_sync_log(
            db, log_id, "warning" if stats["errors"] else "success",
            accounts=stats["accounts"], campaigns=stats["campaigns"],
            error_message=f"{stats['errors']} customers failed" if stats["errors"] else None,
        )
    except Exception as exc:
        await db.rollback()
        await finish_sync_log(
            db, log_id, "error",
            error_message=str(exc)[:500], error_details={"type": type(exc).__name__},
        )
        raise

    logger.info(
        "[%s] Google data sync done: %d accounts, %d campaigns, %d ad groups",
        log_id, stats["accounts"], stats["campaigns"], stats["ad_sets"],
    )
    return stats


async def _sync_customer(
    db: AsyncSession,
    google: GoogleAdsAPIService,
    token: str,
    integration_id: uuid.UUID,
    customer_id: str,
    stats: dict,
) -> None:
    customer = await google.get_customer(token, customer_id)
    if not customer:
        return
    ad_account = await upsert(
        db, AdAccount,
        {"integration_id": integration_id, "account_id": customer.pop("account_id")},
        {**customer, "provider": Provider.GOOGLE.value, "is_active": True},
    )
    stats["accounts"] += 1

    campaign_map: dict[str, uuid.UUID] = {}
    for c in await google.list_campaigns(token, customer_id):
        key = {"ad_account_id": ad_account.id, "campaign_id": c.pop("campaign_id")}
        campaign = await upsert(db, Campaign, key, {**c, "sync_enabled": True})
        campaign_map[key["campaign_id"]] = campaign.id
        stats["campaigns"] += 1

    for group in await google.list_ad_groups(token, customer_id):
        parent = campaign_map.get(group.pop("campaign_id"))
        if not parent:
            continue
        await upsert(db, AdSet, {"campaign_id": parent, "ad_set_id": group.pop("ad_set_id")}, group)
        stats["ad_sets"] += 1


async def sync_google_metrics(db: AsyncSession, integration: Integration, now: datetime | None = None) -> dict:
    """One GAQL metrics query per account for the lookback window.

    Account-level failures are counted; the run ends with status ``warning``
    when any occurred.
    """
    settings = get_settings()
    integration_id = integration.id
    stats = {"metrics_synced": 0, "errors": 0}
    log_id = await start_sync_log(db, "sync-google-ads-metrics", integration_id)

    try:
        if not settings.google_ads_developer_token:
            raise ConfigurationError(DEVELOPER_TOKEN_MISSING)
        token = await get_valid_access_token(db, integration_id)

        result = await db.execute(
            select(Campaign, AdAccount.account_id)
            .join(AdAccount, Campaign.ad_account_id == AdAccount.id)
            .where(AdAccount.integration_id == integration_id)
        )
        by_account: dict[str, dict[str, uuid.UUID]] = defaultdict(dict)
        for campaign, account_id in result.all():
            by_account[account_id][campaign.campaign_id] = campaign.id
        if not by_account:
            raise ValidationError("No campaigns found; run the data sync first")

        until = (now or datetime.now(timezone.utc)).date()
        since = until - timedelta(days=settings.sync_lookback_days)
        session_expired = False
        google = GoogleAdsAPIService()
        logger.info("[%s] Fetching Google metrics %s..%s for %d accounts", log_id, since, until, len(by_account))

        for account_id, campaign_map in by_account.items():
            try:
                rows = await google.get_campaign_metrics(token, account_id, since, until)
                for row in rows:
                    campaign_pk = campaign_map.get(row.pop("campaign_id"))
                    if not campaign_pk or row["date"] is None:
                        continue
                    key = {"campaign_id": campaign_pk, "date": row.pop("date"), "ad_id": None}
                    await upsert(db, Metric, key, row)
                    stats["metrics_synced"] += 1
                await db.commit()
            except ProviderAuthError as exc:
                await db.rollback()
                stats["errors"] += 1
                session_expired = True
                logger.warning("[%s] Session rejected for account %s: %s", log_id, account_id, exc)
            except Exception:
                await db.rollback()
                stats["errors"] += 1
                logger.exception("[%s] Metrics failed for account %s", log_id, account_id)

        if session_expired:
            await mark_integration_expired(db, integration_id)

        await finish_sync_log(
            db, log_id, "warning" if stats["errors"] else "success",
            metrics=stats["metrics_synced"],
            error_message=f"{stats['errors']} errors during sync" if stats["errors"] else None,
        )
    except Exception as exc:
        await db.rollback()
        await finish_sync_log(
            db, log_id, "error",
            error_message=str(exc)[:500], error_details={"type": type(exc).__name__},
        )
        raise

    logger.info("[%s] Google metrics sync done: %d metrics, %d errors", log_id, stats["metrics_synced"], stats["errors"])
    return stats


async def orchestrate_google_sync(db: AsyncSession) -> dict:
    """Data then metrics sync for every active Google integration."""
    result = await db.execute(
        select(Integration.id).where(
            Integration.provider == Provider.GOOGLE.value,
            Integration.status == IntegrationStatus.ACTIVE.value,
        )
    )
    integration_ids = list(result.scalars().all())
    logger.info("Orchestrating Google sync for %d integrations", len(integration_ids))

    results = []
    for integration_id in integration_ids:
        entry = {"integration_id": str(integration_id)}
        try:
            integration = await db.get(Integration, integration_id)
            entry["data"] = await sync_google_data(db, integration)
            # reload: a per-customer rollback expires the instance
            integration = await db.get(Integration, integration_id)
            entry["metrics"] = await sync_google_metrics(db, integration)
            entry["success"] = True
        except Exception as exc:
            logger.exception("Google sync failed for integration %s", integration_id)
            entry["success"] = False
            entry["error"] = str(exc)
        results.append(entry)

    return {
        "integrations": len(integration_ids),
        "succeeded": sum(1 for r in results if r["success"]),
        "results": results,
    }
