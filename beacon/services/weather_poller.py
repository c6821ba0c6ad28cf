"""
Adaptive weather poller for Beacon.

This module drives the AlertFetcher for one monitored location and fans
each resulting WeatherBundle out to registered callbacks:
- Poll cadence follows the highest threat level seen (60s critical up to
  15 min with no alerts)
- Newly detected severe/critical conditions trigger an immediate re-fetch
- Backgrounded applications poll one tier slower
- Failures are delivered to callbacks as service-error bundles
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Union

from ..config import get_settings
from ..models.alert import AlertLocationInfo, AlertSet, NormalizedAlert, THREAT_RANK
from ..models.weather import ConditionsError, Location, PollMode, WeatherBundle
from .alert_fetcher import AlertFetcher

logger = logging.getLogger(__name__)

WeatherCallback = Callable[[WeatherBundle], None]

SERVICE_UNAVAILABLE = "Weather service unavailable"


class WeatherPoller:
    """
    Polls weather alerts for a location on an adaptive schedule.

    At most one timer is pending and at most one fetch cycle runs at a time.
    Starting a cycle early (force_update, escalation) cancels the pending
    timer first. Stopping or restarting does not wait for an in-flight
    cycle; its result is dropped without touching poller state. Only
    close() cancels the in-flight task.
    """

    def __init__(
        self,
        fetcher: Optional[AlertFetcher] = None,
        poll_intervals: Optional[dict[Union[PollMode, str], float]] = None,
        escalation_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        poll_logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the weather poller.

        Args:
            fetcher: Alert fetcher (default constructed from settings)
            poll_intervals: Seconds between polls per mode (default from settings)
            escalation_delay: Seconds before the escalation re-fetch (default from settings)
            max_retries: Cycle retries before a service-error bundle (default from settings)
            backoff_base: Base of the cycle retry backoff in seconds (default from settings)
            backoff_max: Cap of the cycle retry backoff in seconds (default from settings)
            poll_logger: Logger for poller events (default module logger)
        """
        settings = get_settings()

        self.fetcher = fetcher or AlertFetcher()
        intervals = poll_intervals or settings.poll_intervals
        self.poll_intervals: dict[PollMode, float] = {
            PollMode(mode): float(seconds) for mode, seconds in intervals.items()
        }
        missing = set(PollMode) - set(self.poll_intervals)
        if missing:
            raise ValueError(f"Missing poll intervals for: {sorted(m.value for m in missing)}")

        self.escalation_delay = (
            settings.escalation_delay_seconds if escalation_delay is None else escalation_delay
        )
        self.max_retries = settings.poll_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.poll_backoff_base_seconds if backoff_base is None else backoff_base
        self.backoff_max = settings.poll_backoff_max_seconds if backoff_max is None else backoff_max
        self._logger = poll_logger or logger

        # Poller state
        self.current_location: Optional[Location] = None
        self.current_poll_mode = PollMode.NORMAL
        self.last_alert_level = PollMode.NORMAL
        self.retry_count = 0
        self.is_polling = False
        self.is_backgrounded = False
        self.last_weather_data: Optional[WeatherBundle] = None

        self._callbacks: list[WeatherCallback] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._next_poll_delay: Optional[float] = None
        self._cycle_lock = asyncio.Lock()
        # Bumped by stop_polling; cycles from an older generation are discarded
        self._generation = 0
        self._cycle_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Callback Registration
    # =========================================================================

    def add_callback(self, callback: WeatherCallback):
        """
        Register a callback for weather bundles.

        If a bundle is already available the callback is invoked with it
        immediately.
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

        if self.last_weather_data is not None:
            self._invoke(callback, self.last_weather_data)

    def remove_callback(self, callback: WeatherCallback):
        """Unregister a callback (no-op if not registered)."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def callback_count(self) -> int:
        """Number of registered callbacks."""
        return len(self._callbacks)

    def notify_callbacks(self, bundle: WeatherBundle):
        """Deliver a bundle to every callback; one failing callback does not stop the rest."""
        for callback in list(self._callbacks):
            self._invoke(callback, bundle)

    def _invoke(self, callback: WeatherCallback, bundle: WeatherBundle):
        try:
            callback(bundle)
        except Exception as e:
            self._logger.error(f"Error in weather callback {callback!r}: {e}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_polling(
        self,
        location: Union[Location, dict[str, Any]],
        initial_callback: Optional[WeatherCallback] = None,
    ) -> Optional[WeatherBundle]:
        """
        Start polling a location, replacing any existing cycle.

        Performs one fetch immediately; that cycle schedules the next one.
        A cycle still in flight for the previous location is discarded.

        Args:
            location: Location or {latitude, longitude} dict
            initial_callback: Optional callback registered before the first fetch

        Returns:
            The bundle produced by the first fetch, or None if another
            start/stop superseded this one while it waited

        Raises:
            InvalidLocationError: If the location is out of range
        """
        if not isinstance(location, Location):
            location = Location.from_dict(location)

        if initial_callback is not None and initial_callback not in self._callbacks:
            self._callbacks.append(initial_callback)

        self.stop_polling()
        generation = self._generation

        async with self._cycle_lock:
            if generation != self._generation:
                return None

            self.current_location = location
            self.current_poll_mode = PollMode.NORMAL
            self.last_alert_level = PollMode.NORMAL
            self.retry_count = 0
            self.is_polling = True

            self._logger.info(f"Weather polling started for {location.cache_key}")
            return await self._run_cycle()

    def stop_polling(self):
        """
        Stop polling.

        Cancels the pending timer and resets the poll mode. A cycle still in
        flight finishes without delivering or rescheduling. Callbacks and the
        last bundle are kept so polling can be restarted.
        """
        self._cancel_timer()
        self._generation += 1
        was_polling = self.is_polling
        self.is_polling = False
        self.current_poll_mode = PollMode.NORMAL
        if was_polling:
            self._logger.info("Weather polling stopped")

    async def force_update(self) -> Optional[WeatherBundle]:
        """
        Fetch immediately (user-triggered refresh).

        Does not reset the retry count or poll mode. Regular scheduling
        resumes after the fetch when polling is active.
        """
        if self.current_location is None:
            self._logger.warning("Cannot force update: no location set")
            return None

        self._cancel_timer()
        return await self.fetch_weather_data()

    async def set_backgrounded(self, backgrounded: bool):
        """
        Adjust polling for application visibility.

        Going to the background demotes the poll mode one tier without
        cancelling the pending timer. Returning to the foreground fetches
        immediately.
        """
        if backgrounded:
            if self.is_backgrounded:
                return
            self.is_backgrounded = True
            background_mode = self.current_poll_mode.demoted()
            self._logger.debug(f"App backgrounded, reducing poll mode to {background_mode.value}")
            self.current_poll_mode = background_mode
        else:
            self.is_backgrounded = False
            self._logger.debug("App foregrounded, forcing weather update")
            await self.force_update()

    async def handle_visibility_change(self, hidden: bool):
        """Visibility hook for embedding applications."""
        await self.set_backgrounded(hidden)

    async def close(self):
        """Stop polling and release all state, cancelling any in-flight cycle."""
        self.stop_polling()
        if self._cycle_task and not self._cycle_task.done():
            self._cycle_task.cancel()
            try:
                await self._cycle_task
            except asyncio.CancelledError:
                pass
        self._cycle_task = None
        self._callbacks.clear()
        self.current_location = None
        self.last_weather_data = None
        self.is_backgrounded = False

    # =========================================================================
    # Fetch Cycle
    # =========================================================================

    async def fetch_weather_data(self) -> Optional[WeatherBundle]:
        """
        Run one fetch cycle: fetch, classify poll mode, notify, schedule.

        Waits for any cycle already in flight to finish first.

        Returns:
            The delivered bundle, or None when the cycle will be retried
        """
        async with self._cycle_lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> Optional[WeatherBundle]:
        location = self.current_location
        if location is None:
            self._logger.error("No location set for weather polling")
            return None

        generation = self._generation
        try:
            alerts_result, conditions_result = await asyncio.gather(
                self.fetcher.get_alerts(location),
                self.fetcher.get_current_conditions(location),
                return_exceptions=True,
            )

            if generation != self._generation:
                self._logger.debug(f"Discarding stale weather data for {location.cache_key}")
                return None

            if isinstance(alerts_result, BaseException):
                raise alerts_result
            if isinstance(conditions_result, BaseException):
                self._logger.warning(f"Conditions fetch raised: {conditions_result}")
                conditions_result = ConditionsError(error="Conditions unavailable")

            escalated = False
            if alerts_result.failed:
                # A failed read never moves the poll mode
                self._logger.warning(f"Alert fetch degraded: {alerts_result.error}")
            else:
                escalated = self.update_poll_mode(alerts_result.alerts)

            bundle = WeatherBundle(
                location=location,
                alerts=alerts_result,
                conditions=conditions_result,
                poll_mode=self.current_poll_mode,
                service_error=alerts_result.failed,
            )

            self.last_weather_data = bundle
            self.retry_count = 0
            self.notify_callbacks(bundle)

            if self.is_polling:
                if escalated:
                    self._logger.info("Emergency conditions detected, fetching immediate update")
                    self._schedule(self.escalation_delay)
                else:
                    self._schedule(self.current_interval)

            return bundle

        except Exception as e:
            if generation != self._generation:
                return None
            self._logger.error(f"Weather polling error: {e}")
            return self._handle_cycle_failure(location)

    def _handle_cycle_failure(self, location: Location) -> Optional[WeatherBundle]:
        """Back off and retry, or deliver a service-error bundle once retries run out."""
        self.retry_count += 1

        if self.retry_count <= self.max_retries:
            delay = min(self.backoff_max, self.backoff_base * 2 ** (self.retry_count - 1))
            self._logger.debug(f"Retrying weather fetch in {delay}s (attempt {self.retry_count})")
            if self.is_polling:
                self._schedule(delay)
            return None

        error_bundle = WeatherBundle(
            location=location,
            alerts=AlertSet(
                alerts=(),
                location=AlertLocationInfo(county="Unknown"),
                error=SERVICE_UNAVAILABLE,
            ),
            conditions=ConditionsError(error=SERVICE_UNAVAILABLE),
            poll_mode=self.current_poll_mode,
            service_error=True,
        )
        self.notify_callbacks(error_bundle)

        self.retry_count = 0
        if self.is_polling:
            self._schedule(self.current_interval)
        return error_bundle

    def update_poll_mode(self, alerts: tuple[NormalizedAlert, ...]) -> bool:
        """
        Recompute the poll mode from the highest threat level in an alert set.

        Args:
            alerts: Normalized alerts from the latest fetch

        Returns:
            True if the alerts newly escalated to severe or critical
        """
        highest = min((alert.threat_level for alert in alerts), key=THREAT_RANK.get, default=None)
        alert_mode = PollMode.from_threat_level(highest)

        escalated = alert_mode.is_emergency and not self.last_alert_level.is_emergency

        new_mode = alert_mode.demoted() if self.is_backgrounded else alert_mode
        if new_mode != self.current_poll_mode:
            self._logger.info(
                f"Updating poll mode from {self.current_poll_mode.value} to {new_mode.value}"
            )
            self.current_poll_mode = new_mode

        self.last_alert_level = alert_mode
        return escalated

    # =========================================================================
    # Scheduling
    # =========================================================================

    @property
    def current_interval(self) -> float:
        """Seconds between polls in the current mode."""
        return self.poll_intervals[self.current_poll_mode]

    @property
    def next_poll_delay(self) -> Optional[float]:
        """Delay used for the pending timer, or None when nothing is scheduled."""
        return self._next_poll_delay if self._timer is not None else None

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def _schedule(self, delay: float):
        """Replace any pending timer with one firing after delay seconds."""
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer)
        self._next_poll_delay = delay

    def _cancel_timer(self):
        """Cancel the pending timer (no-op when none is pending)."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._next_poll_delay = None

    def _on_timer(self):
        self._timer = None
        self._next_poll_delay = None
        self._cycle_task = asyncio.get_running_loop().create_task(
            self._run_scheduled_cycle(self._generation)
        )

    async def _run_scheduled_cycle(self, generation: int):
        async with self._cycle_lock:
            # stopped or restarted while this task waited for the lock
            if not self.is_polling or generation != self._generation:
                return
            await self._run_cycle()

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        """Get current poll status."""
        return {
            "is_polling": self.is_polling,
            "poll_mode": self.current_poll_mode.value,
            "interval": self.current_interval,
            "next_poll_in": self.next_poll_delay,
            "location": self.current_location.to_dict() if self.current_location else None,
            "last_updated": (
                self.last_weather_data.last_updated.isoformat() if self.last_weather_data else None
            ),
            "callback_count": len(self._callbacks),
            "retry_count": self.retry_count,
            "is_backgrounded": self.is_backgrounded,
        }
