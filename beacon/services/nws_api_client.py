"""
NWS API client for Beacon.

This module provides a thin async client for the National Weather Service
API point-lookup, active-alerts and forecast endpoints. Retry and caching
live in the AlertFetcher; this client only maps transport and HTTP failures
to NWSAPIError.

API Documentation: https://www.weather.gov/documentation/services-web-api
"""

import logging
from typing import Any, Optional

import httpx

from ..config import get_settings
from ..models.weather import Location

logger = logging.getLogger(__name__)


class NWSAPIError(Exception):
    """Base exception for NWS API errors."""
    pass


class NWSAPIRateLimitError(NWSAPIError):
    """Raised when rate limited by NWS API."""
    pass


class NWSAPIClient:
    """
    Async NWS client scoped to the three endpoints Beacon needs.

    Features:
    - Identifying User-Agent header (required by the NWS)
    - One pooled httpx client, created lazily and recreated after close()
    - Separate timeouts for point lookups and alert queries
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        points_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Create a client; unset arguments fall back to settings.

        Args:
            base_url: API base URL (default from settings)
            user_agent: User agent string (default from settings)
            timeout: Alerts/forecast request timeout in seconds (default from settings)
            points_timeout: Point lookup timeout in seconds (default from settings)
            transport: Optional httpx transport (used by tests)
        """
        settings = get_settings()

        self.base_url = base_url or settings.nws_api_base_url
        self.user_agent = user_agent or settings.nws_api_user_agent
        self.timeout = timeout or settings.nws_api_timeout
        self.points_timeout = points_timeout or settings.nws_points_timeout

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/geo+json",
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        """
        GET one endpoint and return its JSON object body.

        `endpoint` may be a path relative to the base URL or an absolute URL
        (the point lookup hands back absolute forecast links). Every failure
        surfaces as NWSAPIError; 429 as the NWSAPIRateLimitError subclass.
        """
        client = await self._get_client()

        try:
            response = await client.get(
                endpoint,
                params=params,
                timeout=httpx.Timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT,
            )
        except httpx.RequestError as e:
            logger.error(f"NWS request to {endpoint} failed: {e}")
            raise NWSAPIError(f"Transport failure for {endpoint}: {e}") from e

        self._check_status(response, endpoint)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"NWS API returned invalid JSON for {endpoint}: {e}")
            raise NWSAPIError(f"Invalid JSON from {endpoint}: {e}") from e

        if not isinstance(data, dict):
            raise NWSAPIError(f"Unexpected response body for {endpoint}")
        return data

    @staticmethod
    def _check_status(response: httpx.Response, endpoint: str):
        status = response.status_code
        if status == 429:
            logger.warning(f"NWS throttled request to {endpoint}")
            raise NWSAPIRateLimitError(f"NWS returned 429 for {endpoint}")
        if status >= 400:
            log = logger.warning if status >= 500 else logger.error
            log(f"NWS returned {status} for {endpoint}")
            raise NWSAPIError(f"NWS returned {status} for {endpoint}")

    async def get_point(self, location: Location) -> dict[str, Any]:
        """
        Resolve a coordinate to NWS grid metadata.

        Args:
            location: Coordinate to resolve

        Returns:
            The "properties" object of the /points response
        """
        data = await self._request(
            f"/points/{location.latitude},{location.longitude}",
            timeout=self.points_timeout,
        )
        properties = data.get("properties")
        if not isinstance(properties, dict):
            raise NWSAPIError(f"Point lookup returned no properties for {location.cache_key}")
        return properties

    async def get_active_alerts_for_point(self, location: Location) -> list[dict]:
        """
        Get active severe/extreme alerts covering a coordinate.

        Args:
            location: Coordinate to query

        Returns:
            List of alert feature dictionaries
        """
        params = {
            "point": f"{location.latitude},{location.longitude}",
            "severity": "Severe,Extreme",
            "certainty": "Observed,Likely",
        }
        data = await self._request("/alerts/active", params)
        features = data.get("features") or []
        logger.info(f"Retrieved {len(features)} active alerts for {location.cache_key}")
        return features

    async def get_forecast(self, forecast_url: str) -> dict[str, Any]:
        """
        Get a gridpoint forecast.

        Args:
            forecast_url: Absolute forecast URL from the point metadata

        Returns:
            The "properties" object of the forecast response
        """
        data = await self._request(forecast_url)
        properties = data.get("properties")
        if not isinstance(properties, dict):
            raise NWSAPIError("Forecast response has no properties")
        return properties
