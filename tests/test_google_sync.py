"""
Tests for the Google Ads synchronizer (adwatch.services.google_sync).
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.config import get_settings
from adwatch.errors import ConfigurationError, ProviderAPIError, ProviderAuthError, ValidationError
from adwatch.models.campaign import AdSet, Campaign
from adwatch.models.integration import AdAccount, IntegrationStatus, Provider
from adwatch.models.metric import Metric
from adwatch.models.sync import SyncLog
from adwatch.services.google_ads_api import GoogleAdsAPIService, classify_google_error, parse_metric_row
from adwatch.services.google_sync import orchestrate_google_sync, sync_google_data, sync_google_metrics

from conftest import create_ad_account, create_campaign, create_integration

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _only_log(db: AsyncSession) -> SyncLog:
    return (await db.execute(select(SyncLog))).scalars().one()


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def test_metric_row_converts_micros():
    row = {
        "campaign": {"id": "987"},
        "segments": {"date": "2026-03-09"},
        "metrics": {
            "impressions": "1200",
            "clicks": "30",
            "costMicros": "15250000",
            "conversions": 2.6,
            "ctr": 0.025,
            "averageCpc": "508333",
            "conversionsValue": 120.5,
        },
    }

    parsed = parse_metric_row(row)

    assert parsed["campaign_id"] == "987"
    assert parsed["date"] == date(2026, 3, 9)
    assert parsed["spend"] == Decimal("15.25")
    assert parsed["conversions"] == 3
    assert parsed["cpc"] == Decimal("0.5083")
    assert parsed["conversion_value"] == Decimal("120.50")


def test_google_error_classification():
    assert isinstance(classify_google_error(401, '{"error": {"status": "UNAUTHENTICATED"}}'), ProviderAuthError)
    assert isinstance(classify_google_error(400, '{"error": "invalid_grant"}'), ProviderAuthError)
    assert type(classify_google_error(500, "oops")) is ProviderAPIError


# ---------------------------------------------------------------------------
# sync_google_data
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_developer_token_fails_with_logged_error(db_session: AsyncSession, monkeypatch):
    monkeypatch.setattr(get_settings(), "google_ads_developer_token", "")
    integration = await create_integration(db_session, Provider.GOOGLE.value)

    with pytest.raises(ConfigurationError):
        await sync_google_data(db_session, integration)

    log = await _only_log(db_session)
    assert log.status == "error"
    assert log.error_message == "GOOGLE_ADS_DEVELOPER_TOKEN not configured"


@pytest.mark.asyncio
async def test_data_sync_upserts_accounts_campaigns_and_ad_groups(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.GOOGLE.value)

    async def customer(token, customer_id):
        return {"account_id": customer_id, "account_name": "Store", "currency": "USD", "timezone": "America/Sao_Paulo"}

    async def campaigns(token, customer_id):
        return [{
            "campaign_id": "g1", "name": "Search", "status": "ENABLED", "objective": "SEARCH",
            "daily_budget": Decimal("40"), "lifetime_budget": None, "start_date": None, "end_date": None,
        }]

    async def ad_groups(token, customer_id):
        return [
            {"ad_set_id": "ag1", "campaign_id": "g1", "name": "Brand", "status": "ENABLED", "optimization_goal": "SEARCH_STANDARD"},
            {"ad_set_id": "ag2", "campaign_id": "removed", "name": "Gone", "status": "ENABLED", "optimization_goal": None},
        ]

    with patch.object(GoogleAdsAPIService, "list_accessible_customers", new=AsyncMock(return_value=["111"])), \
         patch.object(GoogleAdsAPIService, "get_customer", new=AsyncMock(side_effect=customer)), \
         patch.object(GoogleAdsAPIService, "list_campaigns", new=AsyncMock(side_effect=campaigns)), \
         patch.object(GoogleAdsAPIService, "list_ad_groups", new=AsyncMock(side_effect=ad_groups)):
        stats = await sync_google_data(db_session, integration)
        await sync_google_data(db_session, integration)

    assert stats == {"accounts": 1, "campaigns": 1, "ad_sets": 1, "errors": 0}
    assert await _count(db_session, AdAccount) == 1
    assert await _count(db_session, Campaign) == 1
    assert await _count(db_session, AdSet) == 1
    account = (await db_session.execute(select(AdAccount))).scalars().one()
    assert account.provider == Provider.GOOGLE.value
    assert account.currency == "USD"


@pytest.mark.asyncio
async def test_data_sync_auth_failure_expires_integration(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.GOOGLE.value)

    with patch.object(
        GoogleAdsAPIService, "list_accessible_customers",
        new=AsyncMock(side_effect=ProviderAuthError("invalid_grant", provider="google", http_status=401)),
    ):
        with pytest.raises(ProviderAuthError):
            await sync_google_data(db_session, integration)

    await db_session.refresh(integration)
    assert integration.status == IntegrationStatus.EXPIRED.value


# ---------------------------------------------------------------------------
# sync_google_metrics
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_metrics_without_campaigns_is_rejected(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.GOOGLE.value)

    with pytest.raises(ValidationError):
        await sync_google_metrics(db_session, integration, now=NOW)

    assert (await _only_log(db_session)).status == "error"


@pytest.mark.asyncio
async def test_metrics_failure_on_one_account_is_a_warning(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.GOOGLE.value)
    good = await create_ad_account(db_session, integration, "111")
    bad = await create_ad_account(db_session, integration, "222")
    campaign = await create_campaign(db_session, good, "g1")
    await create_campaign(db_session, bad, "g2")

    async def metrics(token, customer_id, since, until):
        if customer_id == "222":
            raise ProviderAPIError("quota exhausted", provider="google", http_status=429)
        return [
            {"campaign_id": "g1", "date": date(2026, 3, 8), "impressions": 10, "clicks": 1, "spend": Decimal("3.00")},
            {"campaign_id": "g1", "date": date(2026, 3, 9), "impressions": 20, "clicks": 2, "spend": Decimal("4.00")},
            {"campaign_id": "not-synced", "date": date(2026, 3, 9), "impressions": 5, "clicks": 0, "spend": Decimal("1.00")},
        ]

    with patch.object(GoogleAdsAPIService, "get_campaign_metrics", new=AsyncMock(side_effect=metrics)):
        stats = await sync_google_metrics(db_session, integration, now=NOW)

    assert stats == {"metrics_synced": 2, "errors": 1}
    rows = (await db_session.execute(select(Metric).where(Metric.campaign_id == campaign.id))).scalars().all()
    assert len(rows) == 2
    assert all(r.ad_id is None for r in rows)
    log = await _only_log(db_session)
    assert log.status == "warning"
    assert log.metrics_synced == 2


@pytest.mark.asyncio
async def test_metrics_rejected_session_expires_integration(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.GOOGLE.value)
    good = await create_ad_account(db_session, integration, "111")
    revoked = await create_ad_account(db_session, integration, "222")
    await create_campaign(db_session, good, "g1")
    await create_campaign(db_session, revoked, "g2")

    async def metrics(token, customer_id, since, until):
        if customer_id == "222":
            raise ProviderAuthError("UNAUTHENTICATED", provider="google", http_status=401)
        return [{"campaign_id": "g1", "date": date(2026, 3, 9), "impressions": 20, "clicks": 2, "spend": Decimal("4.00")}]

    with patch.object(GoogleAdsAPIService, "get_campaign_metrics", new=AsyncMock(side_effect=metrics)):
        stats = await sync_google_metrics(db_session, integration, now=NOW)

    assert stats == {"metrics_synced": 1, "errors": 1}
    await db_session.refresh(integration)
    assert integration.status == IntegrationStatus.EXPIRED.value
    assert (await _only_log(db_session)).status == "warning"


@pytest.mark.asyncio
async def test_data_sync_rejected_session_mid_run_expires_integration(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.GOOGLE.value)

    with patch.object(GoogleAdsAPIService, "list_accessible_customers", new=AsyncMock(return_value=["111"])), \
         patch.object(GoogleAdsAPIService, "get_customer", new=AsyncMock(
             side_effect=ProviderAuthError("UNAUTHENTICATED", provider="google", http_status=401))):
        with pytest.raises(ProviderAuthError):
            await sync_google_data(db_session, integration)

    await db_session.refresh(integration)
    assert integration.status == IntegrationStatus.EXPIRED.value
    assert (await _only_log(db_session)).status == "error"


# ---------------------------------------------------------------------------
# orchestrate_google_sync
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_orchestration_continues_past_failed_integration(db_session: AsyncSession):
    await create_integration(db_session, Provider.GOOGLE.value)
    await create_integration(db_session, Provider.GOOGLE.value)
    await create_integration(db_session, Provider.GOOGLE.value, status=IntegrationStatus.EXPIRED.value)
    await create_integration(db_session, Provider.META.value)

    data = AsyncMock(side_effect=[ProviderAPIError("boom", provider="google"), {"accounts": 1}])
    metrics = AsyncMock(return_value={"metrics_synced": 7, "errors": 0})

    with patch("adwatch.services.google_sync.sync_google_data", new=data), \
         patch("adwatch.services.google_sync.sync_google_metrics", new=metrics):
        result = await orchestrate_google_sync(db_session)

    assert result["integrations"] == 2
    assert result["succeeded"] == 1
    assert [r["success"] for r in result["results"]] == [False, True]
    assert result["results"][1]["metrics"] == {"metrics_synced": 7, "errors": 0}
    metrics.assert_awaited_once()
