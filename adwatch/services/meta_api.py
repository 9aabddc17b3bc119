"""Meta Marketing API client: token exchange, account listing, insights."""

import json
import logging
import re
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

GRAPH_HOST = "https://graph.facebook.com"
DEFAULT_TOKEN_TTL = 5184000  # 60 days

# Facebook pagination URLs may return a different API version
# which can cause 403 errors if the app isn't approved for that version.
_VERSION_RE = re.compile(r"graph\.facebook\.com/v[\d.]+/")

INSIGHT_FIELDS = (
    "ad_id,date_start,impressions,clicks,spend,actions,action_values,cost_per_action_type,"
    "ctr,cpc,video_p25_watched_actions,video_p50_watched_actions,"
    "video_p75_watched_actions,video_p100_watched_actions"
)
BREAKDOWN_FIELDS = "date_start,impressions,clicks,spend,actions"
BREAKDOWNS = ("age", "gender", "region")


def _pin_api_version(url: str | None, version: str) -> str | None:
    """Rewrite a Facebook pagination URL to use our pinned API version."""
    if not url:
        return None
    return _VERSION_RE.sub(f"graph.facebook.com/{version}/", url)


def classify_meta_error(status_code: int, body: str) -> ProviderAPIError:
    """Map a Graph API error response onto the error taxonomy.

    Object-gone (code 100 / "does not exist") is checked first since Graph
    reports some of those with type OAuthException too.
    """
    error_code = None
    error_type = ""
    message = body[:200]
    try:
        err = json.loads(body).get("error", {})
        error_code = err.get("code")
        error_type = err.get("type", "")
        message = err.get("message", message)
    except (ValueError, AttributeError):
        pass

    kwargs = {"provider": "meta", "http_status": status_code, "error_code": error_code, "body": body}
    if error_code == 100 or '"code":100' in body or "does not exist" in body:
        return ResourceGoneError(message, **kwargs)
    if (
        error_code == 190
        or error_type == "OAuthException"
        or "OAuthException" in body
        or "Session has expired" in body
    ):
        return ProviderAuthError(message, **kwargs)
    return ProviderAPIError(message, **kwargs)


def _to_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value or "0"))
    except ArithmeticError:
        return Decimal("0")


def _minor_units(value) -> Decimal | None:
    """Meta reports budgets in the account currency's minor unit."""
    if not value:
        return None
    return _to_decimal(value) / 100


def _date_part(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _sum_values(entries: list[dict] | None) -> int:
    return sum(_to_int(e.get("value")) for e in entries or [])


def parse_insight(row: dict) -> dict:
    """Flatten one ad-level daily insight row into metric columns."""
    conversions = messages = results = 0
    purchases = link_clicks = page_views = initiated_checkout = 0

    for action in row.get("actions") or []:
        value = _to_int(action.get("value"))
        action_type = action.get("action_type", "")

        if any(k in action_type for k in ("purchase", "conversion", "lead", "complete_registration")):
            conversions += value
        if "purchase" in action_type:
            purchases += value
        if "messaging" in action_type or "contact" in action_type:
            messages += value
        if action_type == "link_click":
            link_clicks += value
        if action_type == "landing_page_view":
            page_views += value
        if "initiate_checkout" in action_type:
            initiated_checkout += value
        if "lead" in action_type or "engagement" in action_type or action_type in ("link_click", "landing_page_view"):
            results += value

    if results == 0:
        results = conversions or messages

    spend = _to_decimal(row.get("spend"))
    cost_per_result = Decimal("0")
    cost_per_message = Decimal("0")
    for cost in row.get("cost_per_action_type") or []:
        action_type = cost.get("action_type", "")
        amount = _to_decimal(cost.get("value"))
        if ("lead" in action_type or action_type == "link_click") and not cost_per_result:
            cost_per_result = amount
        if "messaging" in action_type and not cost_per_message:
            cost_per_message = amount
    if not cost_per_result and results and spend:
        cost_per_result = spend / results
    if not cost_per_message and messages and spend:
        cost_per_message = spend / messages

    conversion_value = sum(
        (_to_decimal(av.get("value")) for av in row.get("action_values") or []
         if "purchase" in av.get("action_type", "")),
        Decimal("0"),
    )

    return {
        "ad_id": row.get("ad_id"),
        "date": _date_part(row.get("date_start")),
        "impressions": _to_int(row.get("impressions")),
        "clicks": _to_int(row.get("clicks")),
        "spend": spend,
        "conversions": conversions,
        "conversion_value": conversion_value,
        "ctr": _to_decimal(row.get("ctr")),
        "cpc": _to_decimal(row.get("cpc")),
        "link_clicks": link_clicks,
        "page_views": page_views,
        "initiated_checkout": initiated_checkout,
        "purchases": purchases,
        "results": results,
        "messages": messages,
        "cost_per_result": cost_per_result.quantize(Decimal("0.0001")),
        "cost_per_message": cost_per_message.quantize(Decimal("0.0001")),
        "video_views_25": _sum_values(row.get("video_p25_watched_actions")),
        "video_views_50": _sum_values(row.get("video_p50_watched_actions")),
        "video_views_75": _sum_values(row.get("video_p75_watched_actions")),
        "video_views_100": _sum_values(row.get("video_p100_watched_actions")),
    }


def parse_breakdown(row: dict, breakdown: str) -> dict:
    conversions = sum(
        _to_int(a.get("value")) for a in row.get("actions") or []
        if any(k in a.get("action_type", "") for k in ("purchase", "conversion", "lead"))
    )
    return {
        "date": _date_part(row.get("date_start")),
        "breakdown_type": breakdown,
        "breakdown_value": row.get(breakdown) or "unknown",
        "impressions": _to_int(row.get("impressions")),
        "clicks": _to_int(row.get("clicks")),
        "spend": _to_decimal(row.get("spend")),
        "conversions": conversions,
    }


class MetaAPIService:
    """Wraps the Meta Graph API calls the synchronizers and token renewer need."""

    def __init__(self):
        settings = get_settings()
        self.app_id = settings.meta_app_id
        self.app_secret = settings.meta_app_secret
        self.version = settings.meta_graph_version
        self.graph_base = f"{GRAPH_HOST}/{self.version}"

    def _auth_params(self, access_token: str) -> dict:
        return {"access_token": access_token}

    async def _get(self, client: httpx.AsyncClient, url: str, params: dict) -> dict:
        resp = await client.get(url, params=params)
        if resp.status_code >= 400:
            raise classify_meta_error(resp.status_code, resp.text)
        return resp.json()

    async def _paginate(self, url: str, params: dict, timeout: float = 30) -> list[dict]:
        rows = []
        async with httpx.AsyncClient(timeout=timeout) as client:
            while url:
                data = await self._get(client, url, params)
                rows.extend(data.get("data", []))
                url = _pin_api_version(data.get("paging", {}).get("next"), self.version)
                params = {}
        return rows

    # -- Tokens ------------------------------------------------------------

    async def exchange_long_lived_token(self, access_token: str) -> dict:
        """Exchange the current long-lived token for a fresh one (~60 days)."""
        if not self.app_id or not self.app_secret:
            raise ConfigurationError("META_APP_ID / META_APP_SECRET not configured")
        async with httpx.AsyncClient(timeout=30) as client:
            data = await self._get(
                client,
                f"{self.graph_base}/oauth/access_token",
                {
                    "grant_type": "fb_exchange_token",
                    "client_id": self.app_id,
                    "client_secret": self.app_secret,
                    "fb_exchange_token": access_token,
                },
            )
        if not data.get("access_token"):
            raise ProviderAPIError("Token exchange returned no access_token", provider="meta")
        expires_in = data.get("expires_in") or DEFAULT_TOKEN_TTL
        data["expires_at"] = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        return data

    # -- Ad accounts -------------------------------------------------------

    async def list_ad_accounts(self, access_token: str) -> list[dict]:
        """List all ad accounts the user has access to."""
        return await self._paginate(
            f"{self.graph_base}/me/adaccounts",
            {**self._auth_params(access_token), "fields": "id,name,currency,account_status", "limit": 50},
        )

    async def get_ad_account(self, access_token: str, account_id: str) -> dict:
        """Lightweight read that confirms the token can still read the account."""
        async with httpx.AsyncClient(timeout=30) as client:
            return await self._get(
                client,
                f"{self.graph_base}/{account_id}",
                {**self._auth_params(access_token), "fields": "id,name"},
            )

    # -- Campaigns, Ad Sets, Ads -------------------------------------------

    async def list_campaigns(self, access_token: str, account_id: str) -> list[dict]:
        """Fetch all campaigns for an ad account (``act_<id>``)."""
        rows = await self._paginate(
            f"{self.graph_base}/{account_id}/campaigns",
            {
                **self._auth_params(access_token),
                "fields": "id,name,status,objective,daily_budget,lifetime_budget,start_time,stop_time",
                "limit": 200,
            },
        )
        return [
            {
                "campaign_id": c["id"],
                "name": c.get("name", ""),
                "status": c.get("status", "UNKNOWN"),
                "objective": c.get("objective"),
                "daily_budget": _minor_units(c.get("daily_budget")),
                "lifetime_budget": _minor_units(c.get("lifetime_budget")),
                "start_date": _date_part(c.get("start_time")),
                "end_date": _date_part(c.get("stop_time")),
            }
            for c in rows
        ]

    async def list_account_adsets(self, access_token: str, account_id: str) -> list[dict]:
        """Fetch every ad set of an account in one paginated listing."""
        rows = await self._paginate(
            f"{self.graph_base}/{account_id}/adsets",
            {
                **self._auth_params(access_token),
                "fields": (
                    "id,name,status,campaign_id,optimization_goal,billing_event,bid_amount,"
                    "daily_budget,lifetime_budget,start_time,end_time,targeting"
                ),
                "limit": 200,
            },
        )
        return [
            {
                "ad_set_id": a["id"],
                "campaign_id": a.get("campaign_id"),
                "name": a.get("name", ""),
                "status": a.get("status", "UNKNOWN"),
                "optimization_goal": a.get("optimization_goal"),
                "billing_event": a.get("billing_event"),
                "bid_amount": _minor_units(a.get("bid_amount")),
                "daily_budget": _minor_units(a.get("daily_budget")),
                "lifetime_budget": _minor_units(a.get("lifetime_budget")),
                "start_date": _date_part(a.get("start_time")),
                "end_date": _date_part(a.get("end_time")),
                "targeting": a.get("targeting"),
            }
            for a in rows
        ]

    async def list_account_ads(self, access_token: str, account_id: str) -> list[dict]:
        """Fetch every ad of an account in one paginated listing."""
        rows = await self._paginate(
            f"{self.graph_base}/{account_id}/ads",
            {
                **self._auth_params(access_token),
                "fields": "id,name,status,adset_id,creative{id,name,object_type,thumbnail_url}",
                "limit": 200,
            },
        )
        ads = []
        for ad in rows:
            creative = ad.get("creative") or {}
            ads.append({
                "ad_id": ad["id"],
                "adset_id": ad.get("adset_id"),
                "name": ad.get("name", ""),
                "status": ad.get("status", "UNKNOWN"),
                "creative_id": creative.get("id"),
                "creative_name": creative.get("name"),
                "creative_type": creative.get("object_type"),
                "creative_url": creative.get("thumbnail_url"),
            })
        return ads

    # -- Insights ----------------------------------------------------------

    def _time_range(self, since: date, until: date) -> str:
        return json.dumps({"since": since.isoformat(), "until": until.isoformat()}, separators=(",", ":"))

    async def get_ad_insights(self, access_token: str, campaign_id: str, since: date, until: date) -> list[dict]:
        """Daily ad-level insights for one campaign, parsed into metric columns."""
        rows = await self._paginate(
            f"{self.graph_base}/{campaign_id}/insights",
            {
                **self._auth_params(access_token),
                "level": "ad",
                "fields": INSIGHT_FIELDS,
                "time_range": self._time_range(since, until),
                "time_increment": 1,
                "limit": 500,
            },
            timeout=60,
        )
        return [parse_insight(row) for row in rows]

    async def get_breakdown_insights(
        self, access_token: str, campaign_id: str, breakdown: str, since: date, until: date,
    ) -> list[dict]:
        """Daily campaign-level insights split by ``age``, ``gender`` or ``region``."""
        rows = await self._paginate(
            f"{self.graph_base}/{campaign_id}/insights",
            {
                **self._auth_params(access_token),
                "level": "campaign",
                "fields": BREAKDOWN_FIELDS,
                "breakdowns": breakdown,
                "time_range": self._time_range(since, until),
                "time_increment": 1,
                "limit": 500,
            },
            timeout=60,
        )
        return [parse_breakdown(row, breakdown) for row in rows]
