"""Services for Beacon."""

from .alert_fetcher import AlertFetcher
from .alert_subscription import AlertSubscription, ConnectionStatus
from .message_broker import MessageBroker, MessageType
from .nws_api_client import NWSAPIClient, NWSAPIError, NWSAPIRateLimitError
from .weather_poller import WeatherPoller

__all__ = [
    "AlertFetcher",
    "AlertSubscription",
    "ConnectionStatus",
    "MessageBroker",
    "MessageType",
    "NWSAPIClient",
    "NWSAPIError",
    "NWSAPIRateLimitError",
    "WeatherPoller",
]
