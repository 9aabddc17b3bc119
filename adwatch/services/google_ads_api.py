"""Google Ads REST client (GAQL search) plus the OAuth2 refresh-token exchange."""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import httpx

from adwatch.config import get_settings
from adwatch.errors import (
    ConfigurationError,
    ProviderAPIError,
    ProviderAuthError,
    ResourceGoneError,
)

logger = logging.getLogger(__name__)

ADS_HOST = "https://googleads.googleapis.com"
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
DEFAULT_TOKEN_TTL = 3600
MICROS = Decimal("1000000")

CUSTOMER_QUERY = """
    SELECT customer.id, customer.descriptive_name, customer.currency_code, customer.time_zone
    FROM customer
    LIMIT 1
"""

CAMPAIGN_QUERY = """
    SELECT campaign.id, campaign.name, campaign.status, campaign.advertising_channel_type,
           campaign.start_date, campaign.end_date, campaign_budget.amount_micros,
           campaign_budget.total_amount_micros
    FROM campaign
    WHERE campaign.status != 'REMOVED'
"""

AD_GROUP_QUERY = """
    SELECT ad_group.id, ad_group.name, ad_group.status, ad_group.type, campaign.id
    FROM ad_group
    WHERE ad_group.status != 'REMOVED'
"""

METRICS_QUERY = """
    SELECT campaign.id, segments.date, metrics.impressions, metrics.clicks,
           metrics.cost_micros, metrics.conversions, metrics.ctr, metrics.average_cpc,
           metrics.conversions_value
    FROM campaign
    WHERE segments.date BETWEEN '{since}' AND '{until}'
      AND campaign.status != 'REMOVED'
"""


def classify_google_error(status_code: int, body: str) -> ProviderAPIError:
    status = ""
    message = body[:200]
    try:
        err = json.loads(body).get("error", {})
        status = err.get("status", "")
        message = err.get("message", message)
    except (ValueError, AttributeError):
        pass

    kwargs = {"provider": "google", "http_status": status_code, "body": body}
    if status_code == 401 or status == "UNAUTHENTICATED" or "invalid_grant" in body:
        return ProviderAuthError(message, **kwargs)
    if status_code == 404 or status == "NOT_FOUND":
        return ResourceGoneError(message, **kwargs)
    return ProviderAPIError(message, **kwargs)


def _micros(value) -> Decimal:
    return Decimal(str(value or "0")) / MICROS


def _budget(value) -> Decimal | None:
    return _micros(value) if value else None


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def parse_metric_row(row: dict) -> dict:
    m = row.get("metrics", {})
    return {
        "campaign_id": str(row.get("campaign", {}).get("id", "")),
        "date": _parse_date(row.get("segments", {}).get("date")),
        "impressions": int(m.get("impressions") or 0),
        "clicks": int(m.get("clicks") or 0),
        "spend": _micros(m.get("costMicros")).quantize(Decimal("0.01")),
        "conversions": round(float(m.get("conversions") or 0)),
        "ctr": Decimal(str(m.get("ctr") or "0")).quantize(Decimal("0.0001")),
        "cpc": _micros(m.get("averageCpc")).quantize(Decimal("0.0001")),
        "conversion_value": Decimal(str(m.get("conversionsValue") or "0")).quantize(Decimal("0.01")),
    }


class GoogleAdsAPIService:
    """Thin async wrapper over the Google Ads REST search endpoint."""

    def __init__(self):
        settings = get_settings()
        self.client_id = settings.google_client_id
        self.client_secret = settings.google_client_secret
        self.developer_token = settings.google_ads_developer_token
        self.ads_base = f"{ADS_HOST}/{settings.google_ads_api_version}"

    def _headers(self, access_token: str, customer_id: str | None = None) -> dict:
        if not self.developer_token:
            raise ConfigurationError("GOOGLE_ADS_DEVELOPER_TOKEN not configured")
        headers = {
            "Authorization": f"Bearer {access_token}",
            "developer-token": self.developer_token,
        }
        if customer_id:
            headers["login-customer-id"] = customer_id
        return headers

    # -- OAuth -------------------------------------------------------------

    async def refresh_access_token(self, refresh_token: str) -> dict:
        """Exchange a refresh token for a new access token (~1 hour)."""
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not configured")
        async with httpx.AsyncClient(timeout=30) as client:
            resp = await client.post(
                OAUTH_TOKEN_URL,
                json={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        if resp.status_code >= 400:
            raise classify_google_error(resp.status_code, resp.text)
        data = resp.json()
        if not data.get("access_token"):
            raise ProviderAPIError("Token refresh returned no access_token", provider="google")
        expires_in = data.get("expires_in") or DEFAULT_TOKEN_TTL
        data["expires_at"] = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        return data

    # -- Customers ---------------------------------------------------------

    async def list_accessible_customers(self, access_token: str) -> list[str]:
        """Customer ids (without the ``customers/`` prefix) the token can reach."""
        async with httpx.AsyncClient(timeout=30) as client:
            resp = await client.get(
                f"{self.ads_base}/customers:listAccessibleCustomers",
                headers=self._headers(access_token),
            )
        if resp.status_code >= 400:
            raise classify_google_error(resp.status_code, resp.text)
        return [name.split("/")[1] for name in resp.json().get("resourceNames", [])]

    async def search(self, access_token: str, customer_id: str, query: str) -> list[dict]:
        """Run a GAQL query, following ``nextPageToken``."""
        rows = []
        payload = {"query": query}
        async with httpx.AsyncClient(timeout=60) as client:
            while True:
                resp = await client.post(
                    f"{self.ads_base}/customers/{customer_id}/googleAds:search",
                    headers=self._headers(access_token, customer_id),
                    json=payload,
                )
                if resp.status_code >= 400:
                    raise classify_google_error(resp.status_code, resp.text)
                data = resp.json()
                rows.extend(data.get("results", []))
                if not data.get("nextPageToken"):
                    break
                payload = {"query": query, "pageToken": data["nextPageToken"]}
        return rows

    async def get_customer(self, access_token: str, customer_id: str) -> dict | None:
        rows = await self.search(access_token, customer_id, CUSTOMER_QUERY)
        if not rows:
            return None
        customer = rows[0].get("customer", {})
        return {
            "account_id": str(customer.get("id", customer_id)),
            "account_name": customer.get("descriptiveName") or f"Google Ads {customer_id}",
            "currency": customer.get("currencyCode") or "BRL",
            "timezone": customer.get("timeZone"),
        }

    # -- Campaigns & ad groups ---------------------------------------------

    async def list_campaigns(self, access_token: str, customer_id: str) -> list[dict]:
        rows = await self.search(access_token, customer_id, CAMPAIGN_QUERY)
        campaigns = []
        for row in rows:
            c = row.get("campaign", {})
            budget = row.get("campaignBudget", {})
            campaigns.append({
                "campaign_id": str(c.get("id", "")),
                "name": c.get("name", ""),
                "status": c.get("status", "UNKNOWN"),
                "objective": c.get("advertisingChannelType"),
                "daily_budget": _budget(budget.get("amountMicros")),
                "lifetime_budget": _budget(budget.get("totalAmountMicros")),
                "start_date": _parse_date(c.get("startDate")),
                "end_date": _parse_date(c.get("endDate")),
            })
        return campaigns

    async def list_ad_groups(self, access_token: str, customer_id: str) -> list[dict]:
        rows = await self.search(access_token, customer_id, AD_GROUP_QUERY)
        return [
            {
                "ad_set_id": str(row.get("adGroup", {}).get("id", "")),
                "campaign_id": str(row.get("campaign", {}).get("id", "")),
                "name": row.get("adGroup", {}).get("name", ""),
                "status": row.get("adGroup", {}).get("status", "UNKNOWN"),
                "optimization_goal": row.get("adGroup", {}).get("type"),
            }
            for row in rows
        ]

    # -- Metrics -----------------------------------------------------------

    async def get_campaign_metrics(self, access_token: str, customer_id: str, since: date, until: date) -> list[dict]:
        """Daily campaign metrics for the window, money converted from micros."""
        query = METRICS_QUERY.format(since=since.isoformat(), until=until.isoformat())
        rows = await self.search(access_token, customer_id, query)
        return [parse_metric_row(row) for row in rows]
