"""
Async client for the Broadstreet REST API (read side used by the sync).

Every request waits on the shared RateLimiter before it goes out. The access
token travels as the `access_token` query parameter and is never logged.

Collection endpoints return an envelope keyed by the collection name
({"networks": [...]}), except /placements which returns a bare list.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from admirror.broadstreet.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


# ── Exceptions ────────────────────────────────────────────────────────────────

class BroadstreetAPIError(Exception):
    """Base class for failures talking to Broadstreet."""


class BroadstreetConfigError(BroadstreetAPIError):
    """Raised when the client cannot be built (e.g. no API token configured)."""


class BroadstreetTransportError(BroadstreetAPIError):
    """Raised when the request never produced an HTTP response."""


class BroadstreetHTTPError(BroadstreetAPIError):
    """Raised for a non-2xx response."""

    def __init__(self, status_code: int, endpoint: str, body: str = ""):
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body
        super().__init__(f"API request failed: {status_code} on {endpoint}")


class BroadstreetResponseError(BroadstreetAPIError):
    """Raised when a 2xx body is not the JSON shape we expect."""


# ── Client ────────────────────────────────────────────────────────────────────

class BroadstreetClient:
    """
    Thin async wrapper over the Broadstreet API.

    Usage:
        async with BroadstreetClient(token, base_url, rate_limiter=limiter) as client:
            networks = await client.get_networks()
    """

    def __init__(
        self,
        token: str,
        base_url: str,
        rate_limiter: RateLimiter,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            token: Broadstreet access token.
            base_url: API root, e.g. https://api.broadstreetads.com/api/1
            rate_limiter: Shared limiter; acquired before every request.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (MockTransport in tests).

        Raises:
            BroadstreetConfigError: if token or base_url is empty.
        """
        if not token:
            raise BroadstreetConfigError(
                "BROADSTREET_API_TOKEN is not set; cannot reach Broadstreet."
            )
        if not base_url:
            raise BroadstreetConfigError("BROADSTREET_API_BASE_URL is not set.")
        self._token = token
        self._rate_limiter = rate_limiter
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, rate_limiter: RateLimiter) -> "BroadstreetClient":
        return cls(
            token=settings.broadstreet_api_token,
            base_url=settings.broadstreet_api_base_url,
            rate_limiter=rate_limiter,
            timeout=settings.request_timeout_seconds,
        )

    async def __aenter__(self) -> "BroadstreetClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Rate-limited GET returning the decoded JSON body."""
        await self._rate_limiter.acquire()
        query = dict(params or {})
        query["access_token"] = self._token
        logger.debug("GET %s %s", endpoint, params or {})

        try:
            response = await self._http.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            raise BroadstreetTransportError(
                f"Request to {endpoint} failed: {exc.__class__.__name__}: {exc}"
            ) from exc

        if response.status_code >= 400:
            raise BroadstreetHTTPError(
                response.status_code, endpoint, response.text[:500]
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BroadstreetResponseError(
                f"Response from {endpoint} is not valid JSON"
            ) from exc

    async def _get_collection(
        self, endpoint: str, key: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        body = await self._get(endpoint, params)
        if not isinstance(body, dict) or not isinstance(body.get(key), list):
            raise BroadstreetResponseError(
                f"Response from {endpoint} has no '{key}' list"
            )
        return body[key]

    async def get_networks(self) -> List[Dict[str, Any]]:
        return await self._get_collection("/networks", "networks")

    async def get_advertisers(self, network_id: int) -> List[Dict[str, Any]]:
        return await self._get_collection(
            "/advertisers", "advertisers", {"network_id": network_id}
        )

    async def get_zones(self, network_id: int) -> List[Dict[str, Any]]:
        return await self._get_collection("/zones", "zones", {"network_id": network_id})

    async def get_campaigns_by_advertiser(self, advertiser_id: int) -> List[Dict[str, Any]]:
        return await self._get_collection(
            "/campaigns", "campaigns", {"advertiser_id": advertiser_id}
        )

    async def get_advertisements(self, network_id: int) -> List[Dict[str, Any]]:
        return await self._get_collection(
            "/advertisements", "advertisements", {"network_id": network_id}
        )

    async def get_placements(self, campaign_id: int) -> List[Dict[str, Any]]:
        """Fetch placements for one campaign.

        The endpoint returns a bare list; an empty body means no placements.
        """
        body = await self._get("/placements", {"campaign_id": campaign_id})
        if body is None:
            return []
        if not isinstance(body, list):
            raise BroadstreetResponseError("Response from /placements is not a list")
        return body
