"""Lookup and status transitions for integration rows."""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.errors import NotFoundError, ReauthorizationRequired, ValidationError
from adwatch.models.integration import Integration, IntegrationStatus

logger = logging.getLogger(__name__)


async def get_active_integration(
    db: AsyncSession,
    provider: str,
    integration_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = None,
) -> Integration:
    """Resolve the integration a sync trigger refers to.

    Accepts either the integration id or the owning user's id. An integration
    that is no longer active needs the user to reconnect before it can sync.
    """
    if integration_id:
        integration = await db.get(Integration, integration_id)
    elif user_id:
        result = await db.execute(
            select(Integration).where(
                Integration.user_id == user_id,
                Integration.provider == provider,
            )
        )
        integration = result.scalars().first()
    else:
        raise ValidationError("integration_id or user_id is required")

    if not integration or integration.provider != provider:
        raise NotFoundError(f"No {provider} integration found")
    if integration.status != IntegrationStatus.ACTIVE.value:
        raise ReauthorizationRequired(
            f"Integration {integration.id} is {integration.status}; reconnect the {provider} account"
        )
    return integration


async def mark_integration_expired(db: AsyncSession, integration_id: uuid.UUID) -> None:
    """Flip the integration to ``expired`` and commit immediately."""
    await db.execute(
        update(Integration)
        .where(Integration.id == integration_id)
        .values(status=IntegrationStatus.EXPIRED.value, updated_at=datetime.now(timezone.utc))
    )
    await db.commit()
    logger.warning("Integration %s marked expired after provider rejected its session", integration_id)
