"""Returns a usable access token for an integration, renewing it when close to expiry."""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.config import get_settings
from adwatch.errors import NotFoundError
from adwatch.models.integration import Integration
from adwatch.services.token_renewers import get_renewer
from adwatch.utils.crypto import decrypt_token

logger = logging.getLogger(__name__)


def _make_aware(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (UTC). DB may return naive datetimes."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def needs_renewal(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """True when the token expires within the refresh margin (or already has)."""
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    margin = timedelta(seconds=get_settings().token_refresh_margin_seconds)
    return _make_aware(expires_at) - now <= margin


async def get_valid_access_token(
    db: AsyncSession,
    integration_id: uuid.UUID,
    now: datetime | None = None,
) -> str:
    """Load the integration and hand back a plaintext token that is safe to use.

    Raises ``NotFoundError`` for an unknown id. Renewal errors propagate
    unchanged; by then the integration has been marked expired.
    """
    integration = await db.get(Integration, integration_id)
    if not integration:
        raise NotFoundError(f"Integration {integration_id} not found")

    if integration.expires_at is None:
        logger.warning(
            "Integration %s has no expiry recorded, using stored token as-is",
            integration.id,
        )
        return decrypt_token(integration.access_token)

    if not needs_renewal(integration.expires_at, now):
        return decrypt_token(integration.access_token)

    logger.info("Token for integration %s expires soon, renewing", integration.id)
    return await get_renewer(integration.provider).renew(db, integration)
