"""Sync triggers for Meta and Google Ads, plus the scheduled-sync runner."""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.database import get_db
from adwatch.dependencies import require_service_key
from adwatch.models.integration import Provider
from adwatch.models.sync import SyncLog
from adwatch.services import google_sync, meta_sync, scheduler
from adwatch.services.integrations import get_active_integration

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_service_key)])
limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------

class SyncRequest(BaseModel):
    integration_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None


class AccountSyncRequest(BaseModel):
    account_id: str | None = None
    user_id: uuid.UUID | None = None


class SyncLogResponse(BaseModel):
    id: str
    integration_id: str | None
    function_name: str
    status: str
    started_at: str
    finished_at: str | None
    accounts_synced: int
    campaigns_synced: int
    metrics_synced: int
    error_message: str | None


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------

@router.post("/meta/campaigns")
@limiter.limit("20/minute")
async def sync_meta_campaigns(request: Request, data: SyncRequest, db: AsyncSession = Depends(get_db)):
    integration = await get_active_integration(db, Provider.META.value, data.integration_id, data.user_id)
    stats = await meta_sync.sync_meta_campaigns(db, integration)
    return {"success": True, **stats}


@router.post("/meta/metrics")
@limiter.limit("20/minute")
async def sync_meta_metrics(request: Request, data: SyncRequest, db: AsyncSession = Depends(get_db)):
    integration = await get_active_integration(db, Provider.META.value, data.integration_id, data.user_id)
    stats = await meta_sync.sync_meta_metrics(db, integration)
    return {"success": True, **stats}


@router.post("/meta/account-metrics")
@limiter.limit("20/minute")
async def sync_meta_account_metrics(request: Request, data: AccountSyncRequest, db: AsyncSession = Depends(get_db)):
    stats = await meta_sync.sync_meta_account_metrics(db, data.account_id, data.user_id)
    return {"success": True, **stats}


# ---------------------------------------------------------------------------
# Google
# ---------------------------------------------------------------------------

@router.post("/google/data")
@limiter.limit("20/minute")
async def sync_google_data(request: Request, data: SyncRequest, db: AsyncSession = Depends(get_db)):
    integration = await get_active_integration(db, Provider.GOOGLE.value, data.integration_id, data.user_id)
    stats = await google_sync.sync_google_data(db, integration)
    return {"success": True, **stats}


@router.post("/google/metrics")
@limiter.limit("20/minute")
async def sync_google_metrics(request: Request, data: SyncRequest, db: AsyncSession = Depends(get_db)):
    integration = await get_active_integration(db, Provider.GOOGLE.value, data.integration_id, data.user_id)
    stats = await google_sync.sync_google_metrics(db, integration)
    return {"success": True, **stats}


@router.post("/google/orchestrate")
@limiter.limit("5/minute")
async def orchestrate_google_sync(request: Request, db: AsyncSession = Depends(get_db)):
    result = await google_sync.orchestrate_google_sync(db)
    return {"success": True, **result}


# ---------------------------------------------------------------------------
# Schedules & logs
# ---------------------------------------------------------------------------

@router.post("/schedules/process")
@limiter.limit("5/minute")
async def process_scheduled_syncs(request: Request, db: AsyncSession = Depends(get_db)):
    result = await scheduler.process_scheduled_syncs(db)
    return {"success": True, **result}


@router.get("/logs", response_model=list[SyncLogResponse])
async def list_sync_logs(
    integration_id: uuid.UUID | None = Query(None),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Most recent runs first; the dashboard reads this for "last sync" status."""
    query = select(SyncLog).order_by(SyncLog.started_at.desc()).limit(limit)
    if integration_id:
        query = query.where(SyncLog.integration_id == integration_id)
    result = await db.execute(query)
    return [
        SyncLogResponse(
            id=str(log.id),
            integration_id=str(log.integration_id) if log.integration_id else None,
            function_name=log.function_name,
            status=log.status,
            started_at=log.started_at.isoformat(),
            finished_at=log.finished_at.isoformat() if log.finished_at else None,
            accounts_synced=log.accounts_synced,
            campaigns_synced=log.campaigns_synced,
            metrics_synced=log.metrics_synced,
            error_message=log.error_message,
        )
        for log in result.scalars().all()
    ]
