"""
Alert parser for Beacon.

Turns NWS API GeoJSON alert features into NormalizedAlert objects:
- Expired alerts are dropped
- Alerts whose display severity is minor are dropped
- The result is sorted by threat level, imminence and time to impact
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from .alert_classifier import AlertClassifier, IMMINENT_THRESHOLD_MS
from ..models.alert import NormalizedAlert, ThreatLevel
from ..utils.timing import parse_iso_timestamp, utc_now

logger = logging.getLogger(__name__)


class AlertParser:
    """Parser for NWS API alert features."""

    @classmethod
    def parse_feature(
        cls,
        feature: Any,
        now: Optional[datetime] = None,
        imminent_threshold_ms: float = IMMINENT_THRESHOLD_MS,
    ) -> Optional[NormalizedAlert]:
        """
        Parse an alert from NWS API GeoJSON format.

        Args:
            feature: GeoJSON feature dict from NWS API
            now: Reference time for expiry and time to impact
            imminent_threshold_ms: Imminence window in milliseconds

        Returns:
            NormalizedAlert, or None if the alert is expired, minor or unusable
        """
        if not isinstance(feature, dict):
            logger.warning(f"Skipping non-dict alert feature: {type(feature)}")
            return None

        properties = feature.get("properties") or {}
        if not isinstance(properties, dict):
            logger.warning("Skipping alert feature without properties")
            return None

        now = now or utc_now()

        expires = parse_iso_timestamp(properties.get("expires"))
        if expires and expires < now:
            logger.debug(f"Skipping expired alert: {properties.get('id')}")
            return None

        event = properties.get("event") or ""
        raw_severity = properties.get("severity")
        severity = AlertClassifier.classify_severity(raw_severity, event)
        if severity == ThreatLevel.MINOR:
            return None

        effective = parse_iso_timestamp(properties.get("effective"))
        onset = parse_iso_timestamp(properties.get("onset")) or effective
        time_to_impact = AlertClassifier.compute_time_to_impact(onset, now)

        alert_id = properties.get("id") or properties.get("@id") or feature.get("id") or ""

        return NormalizedAlert(
            id=str(alert_id),
            title=properties.get("headline") or event,
            event=event,
            severity=severity,
            threat_level=AlertClassifier.classify_threat_level(
                raw_severity,
                properties.get("urgency"),
                properties.get("certainty"),
            ),
            emergency_type=AlertClassifier.classify_emergency_type(event),
            description=properties.get("description") or "",
            instruction=properties.get("instruction") or "",
            areas=cls.parse_areas(properties.get("areaDesc")),
            urgency=cls._lower_or_unknown(properties.get("urgency")),
            certainty=cls._lower_or_unknown(properties.get("certainty")),
            action_required=AlertClassifier.derive_action_required(event, severity),
            evacuation_recommended=AlertClassifier.should_recommend_evacuation(event, severity),
            time_to_impact=time_to_impact,
            is_imminent=time_to_impact <= imminent_threshold_ms,
            effective=effective,
            onset=onset,
            expires=expires,
            sender_name=properties.get("senderName") or "",
        )

    @classmethod
    def process_features(
        cls,
        features: Optional[Iterable[Any]],
        now: Optional[datetime] = None,
        imminent_threshold_ms: float = IMMINENT_THRESHOLD_MS,
    ) -> tuple[NormalizedAlert, ...]:
        """
        Parse, filter and sort a list of features.

        Args:
            features: GeoJSON features from an /alerts/active response
            now: Reference time (one value for the whole batch)
            imminent_threshold_ms: Imminence window in milliseconds

        Returns:
            Sorted tuple of NormalizedAlert
        """
        now = now or utc_now()
        alerts = []
        for feature in features or ():
            try:
                alert = cls.parse_feature(feature, now, imminent_threshold_ms)
            except Exception as e:
                logger.error(f"Failed to parse API alert: {e}")
                continue
            if alert:
                alerts.append(alert)
        return cls.sort_alerts(alerts)

    @staticmethod
    def sort_alerts(alerts: Iterable[NormalizedAlert]) -> tuple[NormalizedAlert, ...]:
        """Sort by threat level, imminent first, then soonest impact (stable)."""
        return tuple(sorted(alerts, key=lambda a: a.sort_key))

    @staticmethod
    def parse_areas(area_desc: Any) -> tuple[str, ...]:
        """Split a semicolon-separated NWS areaDesc into area names."""
        if not isinstance(area_desc, str):
            return ()
        return tuple(area.strip() for area in area_desc.split(";") if area.strip())

    @staticmethod
    def _lower_or_unknown(value: Any) -> str:
        return value.lower() if isinstance(value, str) and value else "unknown"
