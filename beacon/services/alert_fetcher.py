"""
Alert fetcher for Beacon.

Turns a location into a normalized AlertSet, hiding transient NWS failures
behind a short-lived per-location cache and bounded retry with exponential
backoff. Failures are returned as data, never raised.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import get_settings
from ..models.alert import AlertLocationInfo, AlertSet
from ..models.weather import ConditionsError, CurrentConditions, Location
from ..parsers import AlertParser
from .nws_api_client import NWSAPIClient, NWSAPIError

logger = logging.getLogger(__name__)

ALERTS_UNAVAILABLE = "Weather service temporarily unavailable"
CONDITIONS_UNAVAILABLE = "Current conditions unavailable"


def _county_name(value: Any) -> str:
    """County display name from NWS point metadata (name or zone URL)."""
    if not isinstance(value, str) or not value:
        return "Unknown"
    name = value.rstrip("/").rsplit("/", 1)[-1]
    return name.replace(" County", "") or "Unknown"


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class AlertFetcher:
    """
    Cached, retrying access to NWS alerts for a location.

    Features:
    - Per-location cache (at most one upstream fetch per TTL per location)
    - Up to N attempts with 1s, 2s, 4s... backoff between them
    - Classification, expiry filtering and priority sorting of results
    """

    def __init__(
        self,
        client: Optional[NWSAPIClient] = None,
        cache_ttl: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        imminent_threshold_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the alert fetcher.

        Args:
            client: NWS API client (default constructed from settings)
            cache_ttl: Seconds a cached alert set stays valid (default from settings)
            max_attempts: Attempts per fetch (default from settings)
            backoff_seconds: Base backoff delay in seconds (default from settings)
            imminent_threshold_seconds: Imminence window (default from settings)
            clock: Monotonic clock used for cache ages
            sleep: Coroutine used for backoff delays
        """
        settings = get_settings()

        self.client = client or NWSAPIClient()
        self.cache_ttl = settings.alert_cache_ttl_seconds if cache_ttl is None else cache_ttl
        self.max_attempts = max_attempts or settings.nws_api_retry_count
        self.backoff_seconds = (
            settings.nws_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        threshold = (
            settings.imminent_threshold_seconds
            if imminent_threshold_seconds is None
            else imminent_threshold_seconds
        )
        self.imminent_threshold_ms = threshold * 1000

        self._clock = clock
        self._sleep = sleep
        self._cache: dict[str, dict[str, Any]] = {}

    # =========================================================================
    # Cache
    # =========================================================================

    def _is_cache_valid(self, key: str) -> bool:
        """Check if cached entry is still valid."""
        entry = self._cache.get(key)
        if not entry:
            return False
        return self._clock() - entry["timestamp"] < self.cache_ttl

    def _get_from_cache(self, key: str) -> Optional[AlertSet]:
        """Get alert set from cache if valid."""
        if self._is_cache_valid(key):
            return self._cache[key]["data"]
        return None

    def _add_to_cache(self, key: str, data: AlertSet):
        """Add alert set to cache."""
        self._cache[key] = {
            "data": data,
            "timestamp": self._clock(),
        }

    def clear_cache(self):
        """Clear all cached alert sets."""
        self._cache.clear()
        logger.info("Alert cache cleared")

    def get_cache_stats(self) -> dict[str, int]:
        """Get cache statistics."""
        return {
            "total_entries": len(self._cache),
            "valid_entries": sum(1 for key in self._cache if self._is_cache_valid(key)),
        }

    # =========================================================================
    # Alerts
    # =========================================================================

    async def get_alerts(self, location: Location) -> AlertSet:
        """
        Get normalized alerts for a location.

        Args:
            location: Coordinate to query

        Returns:
            AlertSet with sorted alerts, or with `error` set once retries are exhausted
        """
        key = location.cache_key
        cached = self._get_from_cache(key)
        if cached is not None:
            logger.debug(f"Alert cache hit for {key}")
            return cached

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.backoff_seconds),
                retry=retry_if_exception_type(NWSAPIError),
                before_sleep=self._log_retry,
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    alert_set = await self._fetch_alerts(location)
        except NWSAPIError as e:
            logger.error(f"NWS alerts unavailable for {key} after {self.max_attempts} attempts: {e}")
            return self._unavailable()
        except Exception as e:
            logger.exception(f"Unexpected error fetching alerts for {key}: {e}")
            return self._unavailable()

        self._add_to_cache(key, alert_set)
        return alert_set

    async def _fetch_alerts(self, location: Location) -> AlertSet:
        """One attempt: point lookup, then active alerts for the point."""
        point = await self.client.get_point(location)
        features = await self.client.get_active_alerts_for_point(location)

        alerts = AlertParser.process_features(
            features,
            imminent_threshold_ms=self.imminent_threshold_ms,
        )
        logger.info(f"Normalized {len(alerts)}/{len(features)} alerts for {location.cache_key}")

        return AlertSet(
            alerts=alerts,
            location=AlertLocationInfo(
                county=_county_name(point.get("county")),
                grid_id=point.get("gridId"),
                grid_x=_optional_int(point.get("gridX")),
                grid_y=_optional_int(point.get("gridY")),
            ),
        )

    def _log_retry(self, retry_state: RetryCallState):
        """Log a failed attempt before backing off."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"NWS alerts attempt {retry_state.attempt_number} failed: {exc}; retrying in {delay:.1f}s"
        )

    @staticmethod
    def _unavailable() -> AlertSet:
        return AlertSet(
            alerts=(),
            location=AlertLocationInfo(county="Unknown"),
            error=ALERTS_UNAVAILABLE,
        )

    # =========================================================================
    # Current conditions
    # =========================================================================

    async def get_current_conditions(self, location: Location) -> Union[CurrentConditions, ConditionsError]:
        """
        Get the current short-term forecast period (single attempt).

        Args:
            location: Coordinate to query

        Returns:
            CurrentConditions, or ConditionsError on any failure
        """
        try:
            point = await self.client.get_point(location)
            forecast_url = point.get("forecast")
            if not forecast_url:
                raise NWSAPIError("Point metadata has no forecast URL")

            forecast = await self.client.get_forecast(forecast_url)
            period = forecast["periods"][0]

            return CurrentConditions(
                temperature=period.get("temperature"),
                temperature_unit=period.get("temperatureUnit") or "",
                wind_speed=period.get("windSpeed") or "",
                wind_direction=period.get("windDirection") or "",
                short_forecast=period.get("shortForecast") or "",
                detailed_forecast=period.get("detailedForecast") or "",
                is_daytime=period.get("isDaytime"),
            )
        except Exception as e:
            logger.error(f"Failed to get current conditions for {location.cache_key}: {e}")
            return ConditionsError(error=CONDITIONS_UNAVAILABLE)

    async def close(self):
        """Close the underlying API client."""
        await self.client.close()
