"""
Tests for user sync schedules (adwatch.services.scheduler).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.models.integration import IntegrationStatus, Provider
from adwatch.models.sync import SyncSchedule
from adwatch.services.google_sync import sync_google_data
from adwatch.services.meta_sync import sync_meta_campaigns, sync_meta_metrics
from adwatch.services.scheduler import next_run_after, process_scheduled_syncs, resolve_sync_function

from conftest import create_integration

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _named_mock(name: str, **kwargs) -> AsyncMock:
    mock = AsyncMock(**kwargs)
    mock.__name__ = name
    return mock


async def _schedule(db: AsyncSession, user_id: uuid.UUID, provider: str, **kwargs) -> SyncSchedule:
    schedule = SyncSchedule(id=uuid.uuid4(), user_id=user_id, provider=provider, **kwargs)
    db.add(schedule)
    await db.commit()
    return schedule


def test_resolve_sync_function():
    assert resolve_sync_function("meta", "metrics") is sync_meta_metrics
    assert resolve_sync_function("meta", "full") is sync_meta_campaigns
    assert resolve_sync_function("google", "full") is sync_google_data
    assert resolve_sync_function("meta", "creatives") is None
    assert resolve_sync_function("tiktok", "full") is None


def test_next_run_after_defaults_to_daily():
    assert next_run_after(NOW, "hourly") == NOW + timedelta(hours=1)
    assert next_run_after(NOW, "weekly") == NOW + timedelta(days=7)
    assert next_run_after(NOW, "every-full-moon") == NOW + timedelta(days=1)


@pytest.mark.asyncio
async def test_due_schedule_runs_and_advances(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.META.value)
    due = await _schedule(
        db_session, integration.user_id, "meta",
        sync_type="metrics", frequency="hourly", next_sync_at=NOW - timedelta(minutes=1),
    )
    later = await _schedule(
        db_session, integration.user_id, "meta",
        sync_type="campaigns", next_sync_at=NOW + timedelta(hours=3),
    )
    metrics = _named_mock("sync_meta_metrics", return_value={"metrics_synced": 3})
    campaigns = _named_mock("sync_meta_campaigns", return_value={})

    with patch("adwatch.services.scheduler.sync_meta_metrics", new=metrics), \
         patch("adwatch.services.scheduler.sync_meta_campaigns", new=campaigns):
        result = await process_scheduled_syncs(db_session, now=NOW)

    assert result["processed"] == 1
    assert result["results"][0]["function"] == "sync_meta_metrics"
    assert result["results"][0]["result"] == {"metrics_synced": 3}
    campaigns.assert_not_awaited()

    await db_session.refresh(due)
    await db_session.refresh(later)
    assert _aware(due.last_sync_at) == NOW
    assert _aware(due.next_sync_at) == NOW + timedelta(hours=1)
    assert due.last_sync_at is not None and later.last_sync_at is None


@pytest.mark.asyncio
async def test_schedule_without_active_integration_is_skipped(db_session: AsyncSession):
    integration = await create_integration(db_session, status=IntegrationStatus.EXPIRED.value)
    await _schedule(db_session, integration.user_id, "meta", sync_type="full")
    sync = _named_mock("sync_meta_campaigns")

    with patch("adwatch.services.scheduler.sync_meta_campaigns", new=sync):
        result = await process_scheduled_syncs(db_session, now=NOW)

    assert result == {"processed": 0, "results": []}
    sync.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_sync_keeps_schedule_due(db_session: AsyncSession):
    integration = await create_integration(db_session, Provider.GOOGLE.value)
    schedule = await _schedule(db_session, integration.user_id, "google", sync_type="full")
    sync = _named_mock("sync_google_data", side_effect=RuntimeError("provider down"))

    with patch("adwatch.services.scheduler.sync_google_data", new=sync):
        result = await process_scheduled_syncs(db_session, now=NOW)

    assert result["processed"] == 1
    assert result["results"][0] == {"schedule_id": str(schedule.id), "success": False, "error": "provider down"}
    await db_session.refresh(schedule)
    assert schedule.next_sync_at is None
