"""``sync_logs`` bookkeeping: one row per run, opened as running and closed with counts."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.models.sync import SyncLog


async def start_sync_log(
    db: AsyncSession, function_name: str, integration_id: uuid.UUID | None = None,
) -> uuid.UUID:
    log = SyncLog(
        integration_id=integration_id,
        function_name=function_name,
        status="running",
        started_at=datetime.now(timezone.utc),
    )
    db.add(log)
    await db.commit()
    return log.id


async def finish_sync_log(
    db: AsyncSession,
    log_id: uuid.UUID,
    status: str,
    *,
    accounts: int = 0,
    campaigns: int = 0,
    metrics: int = 0,
    error_message: str | None = None,
    error_details: dict | None = None,
) -> None:
    # Written by id so it still works after the run's transaction was rolled back
    await db.execute(
        update(SyncLog)
        .where(SyncLog.id == log_id)
        .values(
            status=status,
            finished_at=datetime.now(timezone.utc),
            accounts_synced=accounts,
            campaigns_synced=campaigns,
            metrics_synced=metrics,
            error_message=error_message,
            error_details=error_details,
        )
    )
    await db.commit()
