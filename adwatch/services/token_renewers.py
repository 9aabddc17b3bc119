"""Provider-specific OAuth renewal, selected by ``Integration.provider``.

Every renewer has the same shape: attempt the exchange, then either persist
the new credentials with status ``active`` or persist status ``expired`` and
re-raise. The commit happens inside the renewer so the failure state survives
the caller's rollback.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from adwatch.errors import ConfigurationError, MissingRefreshTokenError
from adwatch.models.integration import Integration, IntegrationStatus, Provider
from adwatch.services.google_ads_api import GoogleAdsAPIService
from adwatch.services.meta_api import MetaAPIService
from adwatch.utils.crypto import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)


class TokenRenewer:
    provider: str = ""

    async def exchange(self, integration: Integration) -> dict:
        """Return ``{"access_token", "expires_at"[, "refresh_token"]}``."""
        raise NotImplementedError

    async def renew(self, db: AsyncSession, integration: Integration) -> str:
        try:
            data = await self.exchange(integration)
        except Exception as exc:
            logger.error(
                "Token renewal failed for %s integration %s: %s",
                self.provider, integration.id, exc,
            )
            integration.status = IntegrationStatus.EXPIRED.value
            integration.updated_at = datetime.now(timezone.utc)
            await db.commit()
            raise

        integration.access_token = encrypt_token(data["access_token"])
        if data.get("refresh_token"):
            integration.refresh_token = encrypt_token(data["refresh_token"])
        integration.expires_at = data["expires_at"]
        integration.status = IntegrationStatus.ACTIVE.value
        integration.updated_at = datetime.now(timezone.utc)
        await db.commit()

        logger.info(
            "Renewed %s token for integration %s, expires at %s",
            self.provider, integration.id, integration.expires_at.isoformat(),
        )
        return data["access_token"]


class MetaTokenRenewer(TokenRenewer):
    """Re-exchanges the current long-lived token for a new one."""

    provider = Provider.META.value

    async def exchange(self, integration: Integration) -> dict:
        current = decrypt_token(integration.access_token)
        data = await MetaAPIService().exchange_long_lived_token(current)
        return {"access_token": data["access_token"], "expires_at": data["expires_at"]}


class GoogleTokenRenewer(TokenRenewer):
    """Trades the stored refresh token for a new access token."""

    provider = Provider.GOOGLE.value

    async def exchange(self, integration: Integration) -> dict:
        if not integration.refresh_token:
            raise MissingRefreshTokenError(
                f"Google integration {integration.id} has no refresh token; reconnect the account"
            )
        data = await GoogleAdsAPIService().refresh_access_token(decrypt_token(integration.refresh_token))
        return {
            "access_token": data["access_token"],
            "expires_at": data["expires_at"],
            "refresh_token": data.get("refresh_token"),
        }


_RENEWERS: dict[str, type[TokenRenewer]] = {
    MetaTokenRenewer.provider: MetaTokenRenewer,
    GoogleTokenRenewer.provider: GoogleTokenRenewer,
}


def get_renewer(provider: str) -> TokenRenewer:
    try:
        return _RENEWERS[provider]()
    except KeyError:
        raise ConfigurationError(f"No token renewer registered for provider '{provider}'") from None
