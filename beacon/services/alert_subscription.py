"""
Alert subscription for Beacon.

Consumer-side view of the weather poller: start/stop monitoring a location,
keep the last-known alerts, and derive the convenience queries UI
collaborators need (most urgent alert, critical alerts, evacuation).
"""

import logging
from enum import Enum
from typing import Any, Callable, Optional, Union

from ..models.alert import NormalizedAlert, ThreatLevel
from ..models.weather import Conditions, Location, PollMode, WeatherBundle
from ..utils.timing import format_time_to_impact
from .alert_fetcher import AlertFetcher
from .weather_poller import WeatherPoller

logger = logging.getLogger(__name__)

AlertChangeHandler = Callable[[tuple[NormalizedAlert, ...], tuple[NormalizedAlert, ...]], None]
CriticalAlertHandler = Callable[[tuple[NormalizedAlert, ...]], None]


class ConnectionStatus(str, Enum):
    """Subscription connection state."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class AlertSubscription:
    """
    Subscribes to a WeatherPoller on behalf of one consumer.

    Change notifications:
    - on_alert_change(new_alerts, old_alerts) fires when the ordered list of
      alert ids differs from the previous update
    - on_critical_alert(critical_alerts) fires for every update that contains
      at least one critical alert
    """

    def __init__(
        self,
        poller: WeatherPoller,
        fetcher: Optional[AlertFetcher] = None,
        on_alert_change: Optional[AlertChangeHandler] = None,
        on_critical_alert: Optional[CriticalAlertHandler] = None,
        enable_polling: bool = True,
    ):
        """
        Initialize the subscription.

        Args:
            poller: Shared weather poller
            fetcher: Fetcher for single fetches when polling is disabled (default poller's)
            on_alert_change: Called with (new_alerts, old_alerts) on identity change
            on_critical_alert: Called with the critical alerts of each update
            enable_polling: Poll continuously (True) or fetch once per start (False)
        """
        self.poller = poller
        self.fetcher = fetcher or poller.fetcher
        self.on_alert_change = on_alert_change
        self.on_critical_alert = on_critical_alert
        self.enable_polling = enable_polling

        self.alerts: tuple[NormalizedAlert, ...] = ()
        self.conditions: Optional[Conditions] = None
        self.loading = False
        self.error: Optional[str] = None
        self.last_updated = None
        self.poll_mode = PollMode.NORMAL
        self.location: Optional[Location] = None
        self.connection_status = ConnectionStatus.DISCONNECTED

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_monitoring(self, location: Union[Location, dict[str, Any]]):
        """
        Start monitoring a location.

        Raises:
            InvalidLocationError: If the location is out of range
        """
        if not isinstance(location, Location):
            location = Location.from_dict(location)

        self.loading = True
        self.error = None
        self.connection_status = ConnectionStatus.CONNECTING
        self.location = location

        if self.enable_polling:
            # Registered without replay; the poller may still hold another location's bundle
            await self.poller.start_polling(location, initial_callback=self.handle_weather_update)
            return

        # Single fetch without polling
        alert_set = await self.fetcher.get_alerts(location)
        self.handle_weather_update(WeatherBundle(
            location=location,
            alerts=alert_set,
            poll_mode=PollMode.NORMAL,
            service_error=alert_set.failed,
        ))

    def stop_monitoring(self):
        """Stop monitoring and detach from the poller."""
        self.poller.remove_callback(self.handle_weather_update)
        if self.enable_polling:
            self.poller.stop_polling()
        self.location = None
        self.connection_status = ConnectionStatus.DISCONNECTED

    async def refresh_alerts(self):
        """Force an immediate update."""
        if self.location is None:
            return

        self.loading = True
        self.connection_status = ConnectionStatus.CONNECTING

        if not self.enable_polling:
            await self.start_monitoring(self.location)
            return

        try:
            bundle = await self.poller.force_update()
        except Exception as e:
            logger.error(f"Failed to refresh weather data: {e}")
            self.loading = False
            self.error = str(e) or "Failed to refresh weather data"
            self.connection_status = ConnectionStatus.ERROR
            return

        if bundle is None:
            # cycle is being retried by the poller
            self.loading = False

    # =========================================================================
    # Updates
    # =========================================================================

    def handle_weather_update(self, bundle: WeatherBundle):
        """
        Poller callback: record the bundle and fire change notifications.

        A failed alert fetch keeps the last-known alerts and sets the error.
        Bundles for a location other than the monitored one are ignored.
        """
        if self.location is not None and bundle.location.cache_key != self.location.cache_key:
            logger.debug(f"Ignoring weather update for {bundle.location.cache_key}")
            return

        previous = self.alerts
        if bundle.alerts.failed and previous:
            alerts = previous
        else:
            alerts = bundle.alert_list

        self.alerts = alerts
        self.conditions = bundle.conditions
        self.loading = False
        self.error = bundle.error
        self.last_updated = bundle.last_updated
        self.poll_mode = bundle.poll_mode
        self.location = bundle.location
        self.connection_status = ConnectionStatus.ERROR if self.error else ConnectionStatus.CONNECTED

        if self.on_alert_change and self._alert_ids(alerts) != self._alert_ids(previous):
            self._fire(self.on_alert_change, alerts, previous)

        critical_alerts = tuple(
            alert for alert in bundle.alert_list if alert.threat_level == ThreatLevel.CRITICAL
        )
        if self.on_critical_alert and critical_alerts:
            self._fire(self.on_critical_alert, critical_alerts)

    @staticmethod
    def _alert_ids(alerts: tuple[NormalizedAlert, ...]) -> tuple[str, ...]:
        return tuple(alert.id for alert in alerts)

    @staticmethod
    def _fire(handler: Callable, *args):
        try:
            handler(*args)
        except Exception as e:
            logger.error(f"Error in alert subscription handler {handler!r}: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_alerts_by_severity(self, threat_level: Union[ThreatLevel, str]) -> list[NormalizedAlert]:
        """Get last-known alerts with the given threat level."""
        try:
            level = ThreatLevel(threat_level)
        except ValueError:
            return []
        return [alert for alert in self.alerts if alert.threat_level == level]

    def get_most_urgent_alert(self) -> Optional[NormalizedAlert]:
        """Alerts are kept sorted, so the first one is the most urgent."""
        return self.alerts[0] if self.alerts else None

    def has_critical_alerts(self) -> bool:
        return any(alert.threat_level == ThreatLevel.CRITICAL for alert in self.alerts)

    def has_evacuation_recommendation(self) -> bool:
        return any(alert.evacuation_recommended for alert in self.alerts)

    def get_polling_status(self) -> dict[str, Any]:
        """Get the poller status."""
        return self.poller.get_status()

    @staticmethod
    def format_time_to_impact(time_to_impact: float) -> str:
        return format_time_to_impact(time_to_impact)

    # =========================================================================
    # Status Helpers
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self.connection_status == ConnectionStatus.CONNECTED

    @property
    def is_loading(self) -> bool:
        return self.loading

    @property
    def has_error(self) -> bool:
        return bool(self.error)

    @property
    def is_empty(self) -> bool:
        return not self.alerts

    def to_dict(self) -> dict[str, Any]:
        """Snapshot of the subscription state for JSON serialization."""
        return {
            "alerts": [alert.to_dict() for alert in self.alerts],
            "conditions": self.conditions.to_dict() if self.conditions is not None else None,
            "loading": self.loading,
            "error": self.error,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "poll_mode": self.poll_mode.value,
            "location": self.location.to_dict() if self.location else None,
            "connection_status": self.connection_status.value,
        }
