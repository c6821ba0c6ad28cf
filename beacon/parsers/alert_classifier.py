"""
Alert classifier for Beacon.

Maps raw NWS alert attributes to the normalized vocabulary used by the
poller and its subscribers:
- Display severity (critical/severe/moderate/minor)
- Threat level from severity, urgency and certainty
- Emergency type
- Protective actions and evacuation recommendation
- Time to impact and imminence

Every method is pure and tolerant of missing or malformed input: unknown
values degrade to "general"/"minor"/empty rather than raising.
"""

import logging
import math
from datetime import datetime
from typing import Optional, Union

from .patterns import (
    ALWAYS_EXTREME_EVENTS,
    ALWAYS_SEVERE_EVENTS,
    EMERGENCY_TYPE_KEYWORDS,
    EVENT_ACTIONS,
    GENERIC_ACTIONS,
    EVACUATION_EVENTS,
    event_matches,
)
from ..models.alert import EmergencyType, ThreatLevel
from ..utils.timing import parse_iso_timestamp, utc_now

logger = logging.getLogger(__name__)

# Onset within one hour counts as imminent
IMMINENT_THRESHOLD_MS = 3_600_000

TimestampInput = Union[datetime, str, None]


def _lower(value) -> str:
    """Lower-case a possibly missing string field."""
    return value.lower() if isinstance(value, str) else ""


def _title(value) -> str:
    """Normalize NWS enumerations ("extreme", "EXTREME") to "Extreme"."""
    return value.strip().capitalize() if isinstance(value, str) else ""


class AlertClassifier:
    """Stateless classification rules for NWS alerts."""

    @classmethod
    def classify_severity(cls, raw_severity: Optional[str], event_name: Optional[str]) -> ThreatLevel:
        """
        Classify the display severity of an alert.

        Args:
            raw_severity: NWS severity ("Extreme", "Severe", "Moderate", "Minor")
            event_name: NWS event name (e.g., "Tornado Warning")

        Returns:
            ThreatLevel used as the display severity label
        """
        severity = _title(raw_severity)
        event_lower = _lower(event_name)

        if severity == "Extreme" or event_matches(event_lower, ALWAYS_EXTREME_EVENTS):
            return ThreatLevel.CRITICAL
        if severity == "Severe" or event_matches(event_lower, ALWAYS_SEVERE_EVENTS):
            return ThreatLevel.SEVERE
        if severity == "Moderate":
            return ThreatLevel.MODERATE
        return ThreatLevel.MINOR

    @classmethod
    def classify_threat_level(
        cls,
        severity: Optional[str],
        urgency: Optional[str],
        certainty: Optional[str],
    ) -> ThreatLevel:
        """
        Classify the operational threat level of an alert.

        Critical requires an extreme, immediate, observed event. Extreme
        events otherwise, and severe events that are immediate or observed,
        are severe.

        Args:
            severity: NWS severity
            urgency: NWS urgency ("Immediate", "Expected", "Future", ...)
            certainty: NWS certainty ("Observed", "Likely", "Possible", ...)

        Returns:
            ThreatLevel used for sorting and poll escalation
        """
        severity = _title(severity)
        urgency = _lower(urgency)
        certainty = _lower(certainty)

        if severity == "Extreme" and urgency == "immediate" and certainty == "observed":
            return ThreatLevel.CRITICAL
        if (
            severity == "Extreme"
            or (severity == "Severe" and urgency == "immediate")
            or (severity == "Severe" and certainty == "observed")
        ):
            return ThreatLevel.SEVERE
        if severity in ("Severe", "Moderate"):
            return ThreatLevel.MODERATE
        return ThreatLevel.MINOR

    @classmethod
    def classify_emergency_type(cls, event_name: Optional[str]) -> EmergencyType:
        """Determine the emergency type from the event name (first match wins)."""
        event_lower = _lower(event_name)
        for emergency_type, keywords in EMERGENCY_TYPE_KEYWORDS:
            if event_matches(event_lower, keywords):
                return emergency_type
        return EmergencyType.GENERAL

    @classmethod
    def derive_action_required(cls, event_name: Optional[str], severity: ThreatLevel) -> tuple[str, ...]:
        """
        Get protective actions for an alert.

        Args:
            event_name: NWS event name
            severity: Display severity from classify_severity

        Returns:
            Ordered actions, possibly empty
        """
        event_lower = _lower(event_name)
        for keyword, actions in EVENT_ACTIONS:
            if keyword in event_lower:
                return actions
        if severity in (ThreatLevel.CRITICAL, ThreatLevel.SEVERE):
            return GENERIC_ACTIONS
        return ()

    @classmethod
    def should_recommend_evacuation(cls, event_name: Optional[str], severity: ThreatLevel) -> bool:
        """Evacuation is recommended only for critical alerts of evacuation-class events."""
        return severity == ThreatLevel.CRITICAL and event_matches(_lower(event_name), EVACUATION_EVENTS)

    @classmethod
    def compute_time_to_impact(cls, onset: TimestampInput, now: Optional[datetime] = None) -> float:
        """
        Milliseconds until onset.

        Args:
            onset: Onset time (datetime or ISO string)
            now: Reference time (default current UTC time)

        Returns:
            Non-negative milliseconds, 0 once onset has passed, math.inf if unknown
        """
        if isinstance(onset, str):
            onset = parse_iso_timestamp(onset)
        if not isinstance(onset, datetime):
            return math.inf

        now = now or utc_now()
        try:
            delta_ms = (onset - now).total_seconds() * 1000
        except TypeError:
            # naive vs aware datetimes
            logger.debug(f"Cannot compare onset {onset!r} with {now!r}")
            return math.inf
        return max(0.0, delta_ms)

    @classmethod
    def is_imminent(
        cls,
        onset: TimestampInput,
        now: Optional[datetime] = None,
        threshold_ms: float = IMMINENT_THRESHOLD_MS,
    ) -> bool:
        """Check if onset is at most threshold_ms away."""
        return cls.compute_time_to_impact(onset, now) <= threshold_ms
