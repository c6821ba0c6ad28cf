"""
Location, conditions and bundle models for Beacon.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from ..utils.timing import parse_iso_timestamp, utc_now
from .alert import AlertSet, NormalizedAlert, ThreatLevel


class InvalidLocationError(ValueError):
    """Raised when a location is outside valid latitude/longitude ranges."""
    pass


@dataclass(frozen=True)
class Location:
    """A monitored coordinate, as delivered by the geolocation feed."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None  # meters
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        """Validate coordinate ranges and store them as floats."""
        for name, value, limit in (
            ("latitude", self.latitude, 90.0),
            ("longitude", self.longitude, 180.0),
        ):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidLocationError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or abs(value) > limit:
                raise InvalidLocationError(
                    f"{name} must be between -{limit:g} and {limit:g}, got {value!r}"
                )
            # Location(40, -75) and Location(40.0, -75.0) share one cache key
            object.__setattr__(self, name, float(value))

    @property
    def cache_key(self) -> str:
        """Identity key used for alert caching."""
        return f"{self.latitude},{self.longitude}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        """Create Location from a geolocation feed dictionary."""
        try:
            latitude = data["latitude"]
            longitude = data["longitude"]
        except (KeyError, TypeError) as e:
            raise InvalidLocationError(f"Location requires latitude and longitude: {data!r}") from e

        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = parse_iso_timestamp(timestamp)

        return cls(
            latitude=latitude,
            longitude=longitude,
            accuracy=data.get("accuracy"),
            timestamp=timestamp if isinstance(timestamp, datetime) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"latitude": self.latitude, "longitude": self.longitude}


class PollMode(str, Enum):
    """Scheduling tiers of the weather poller."""
    CRITICAL = "critical"
    SEVERE = "severe"
    MODERATE = "moderate"
    NORMAL = "normal"

    @classmethod
    def from_threat_level(cls, level: Optional[ThreatLevel]) -> "PollMode":
        """Poll mode for the highest threat level seen (None = no alerts)."""
        if level == ThreatLevel.CRITICAL:
            return cls.CRITICAL
        if level == ThreatLevel.SEVERE:
            return cls.SEVERE
        if level == ThreatLevel.MODERATE:
            return cls.MODERATE
        return cls.NORMAL

    def demoted(self) -> "PollMode":
        """One tier slower (normal stays normal)."""
        return {
            PollMode.CRITICAL: PollMode.SEVERE,
            PollMode.SEVERE: PollMode.MODERATE,
        }.get(self, PollMode.NORMAL)

    @property
    def is_emergency(self) -> bool:
        """Critical and severe modes trigger the escalation fast-path."""
        return self in (PollMode.CRITICAL, PollMode.SEVERE)


@dataclass(frozen=True)
class CurrentConditions:
    """First period of the NWS short-term forecast."""
    temperature: Optional[float] = None
    temperature_unit: str = ""
    wind_speed: str = ""
    wind_direction: str = ""
    short_forecast: str = ""
    detailed_forecast: str = ""
    is_daytime: Optional[bool] = None
    last_updated: datetime = field(default_factory=utc_now)

    @property
    def error(self) -> Optional[str]:
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "temperature": self.temperature,
            "temperature_unit": self.temperature_unit,
            "wind_speed": self.wind_speed,
            "wind_direction": self.wind_direction,
            "short_forecast": self.short_forecast,
            "detailed_forecast": self.detailed_forecast,
            "is_daytime": self.is_daytime,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class ConditionsError:
    """Marker for unavailable current conditions."""
    error: str = "Current conditions unavailable"
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"error": self.error, "last_updated": self.last_updated.isoformat()}


Conditions = Union[CurrentConditions, ConditionsError]


@dataclass(frozen=True)
class WeatherBundle:
    """
    The unit delivered to poller subscribers once per fetch cycle.

    Bundles are shared by reference between subscribers and must not be
    mutated.
    """
    location: Location
    alerts: AlertSet
    poll_mode: PollMode
    conditions: Optional[Conditions] = None
    last_updated: datetime = field(default_factory=utc_now)
    service_error: bool = False

    @property
    def alert_list(self) -> tuple[NormalizedAlert, ...]:
        """Alerts in priority order."""
        return self.alerts.alerts

    @property
    def error(self) -> Optional[str]:
        """First error message carried by the bundle, if any."""
        if self.alerts.error:
            return self.alerts.error
        if self.conditions is not None and self.conditions.error:
            return self.conditions.error
        if self.service_error:
            return "Weather service error"
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert bundle to dictionary for JSON serialization."""
        return {
            "location": self.location.to_dict(),
            "alerts": self.alerts.to_dict(),
            "conditions": self.conditions.to_dict() if self.conditions is not None else None,
            "last_updated": self.last_updated.isoformat(),
            "poll_mode": self.poll_mode.value,
            "service_error": self.service_error,
        }
