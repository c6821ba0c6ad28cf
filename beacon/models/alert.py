"""
Alert data model for Beacon.
Represents a normalized weather alert and the alert set returned by one fetch.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..utils.timing import to_iso, utc_now


class ThreatLevel(str, Enum):
    """Threat tiers (also used for the display severity label)."""
    CRITICAL = "critical"
    SEVERE = "severe"
    MODERATE = "moderate"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        """Sort rank (lower = more urgent)."""
        return THREAT_RANK[self]


THREAT_RANK = {
    ThreatLevel.CRITICAL: 0,
    ThreatLevel.SEVERE: 1,
    ThreatLevel.MODERATE: 2,
    ThreatLevel.MINOR: 3,
}


class EmergencyType(str, Enum):
    """Emergency categories used for navigation planning."""
    TORNADO = "tornado"
    FLOODING = "flooding"
    HURRICANE = "hurricane"
    SEVERE_WEATHER = "severe_weather"
    WINTER_STORM = "winter_storm"
    WILDFIRE = "wildfire"
    EARTHQUAKE = "earthquake"
    GENERAL = "general"


@dataclass(frozen=True)
class NormalizedAlert:
    """
    A weather alert after classification.

    `severity` is the display label derived from the raw NWS severity and the
    event name. `threat_level` combines severity, urgency and certainty and is
    the field used for sorting and poll escalation.
    """
    id: str
    title: str
    event: str
    severity: ThreatLevel
    threat_level: ThreatLevel
    emergency_type: EmergencyType = EmergencyType.GENERAL
    description: str = ""
    instruction: str = ""
    areas: tuple[str, ...] = ()
    urgency: str = "unknown"
    certainty: str = "unknown"
    action_required: tuple[str, ...] = ()
    evacuation_recommended: bool = False
    time_to_impact: float = math.inf  # milliseconds
    is_imminent: bool = False

    # Timing
    effective: Optional[datetime] = None
    onset: Optional[datetime] = None
    expires: Optional[datetime] = None

    sender_name: str = ""

    @property
    def sort_key(self) -> tuple[int, bool, float]:
        """Threat rank, then imminent first, then soonest impact."""
        return (self.threat_level.rank, not self.is_imminent, self.time_to_impact)

    def to_dict(self) -> dict[str, Any]:
        """Convert alert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "event": self.event,
            "severity": self.severity.value,
            "threat_level": self.threat_level.value,
            "emergency_type": self.emergency_type.value,
            "description": self.description,
            "instruction": self.instruction,
            "areas": list(self.areas),
            "urgency": self.urgency,
            "certainty": self.certainty,
            "action_required": list(self.action_required),
            "evacuation_recommended": self.evacuation_recommended,
            # JSON has no infinity
            "time_to_impact": None if math.isinf(self.time_to_impact) else self.time_to_impact,
            "is_imminent": self.is_imminent,
            "effective": to_iso(self.effective),
            "onset": to_iso(self.onset),
            "expires": to_iso(self.expires),
            "sender_name": self.sender_name,
        }


@dataclass(frozen=True)
class AlertLocationInfo:
    """NWS point metadata attached to an alert set."""
    county: str = "Unknown"
    grid_id: Optional[str] = None
    grid_x: Optional[int] = None
    grid_y: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "county": self.county,
            "grid_id": self.grid_id,
            "grid_x": self.grid_x,
            "grid_y": self.grid_y,
        }


@dataclass(frozen=True)
class AlertSet:
    """Normalized alerts for one location, or a service error."""
    alerts: tuple[NormalizedAlert, ...] = ()
    location: AlertLocationInfo = field(default_factory=AlertLocationInfo)
    last_updated: datetime = field(default_factory=utc_now)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        """True when the set represents a fetch failure."""
        return self.error is not None

    @property
    def alert_ids(self) -> tuple[str, ...]:
        """Ordered alert identities."""
        return tuple(alert.id for alert in self.alerts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result = {
            "alerts": [alert.to_dict() for alert in self.alerts],
            "location": self.location.to_dict(),
            "last_updated": self.last_updated.isoformat(),
        }
        if self.error:
            result["error"] = self.error
        return result
