"""
Tests for alert classification rules.
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from beacon.parsers.alert_classifier import AlertClassifier
from beacon.models.alert import EmergencyType, ThreatLevel


NOW = datetime(2025, 5, 20, 21, 0, 0, tzinfo=timezone.utc)


class TestThreatLevel:
    """Tests for threat level classification."""

    def test_extreme_immediate_observed_is_critical(self):
        """Test the only combination that yields critical."""
        assert AlertClassifier.classify_threat_level("Extreme", "immediate", "observed") == ThreatLevel.CRITICAL

    def test_extreme_future_likely_is_severe(self):
        """Test that extreme but not immediate/observed is severe."""
        assert AlertClassifier.classify_threat_level("Extreme", "future", "likely") == ThreatLevel.SEVERE

    def test_moderate_is_moderate(self):
        assert AlertClassifier.classify_threat_level("Moderate", "expected", "possible") == ThreatLevel.MODERATE

    @pytest.mark.parametrize("urgency,certainty", [
        ("immediate", "observed"),
        ("future", "unlikely"),
        (None, None),
    ])
    def test_minor_is_always_minor(self, urgency, certainty):
        assert AlertClassifier.classify_threat_level("Minor", urgency, certainty) == ThreatLevel.MINOR

    def test_severe_immediate_is_severe(self):
        assert AlertClassifier.classify_threat_level("Severe", "Immediate", "Likely") == ThreatLevel.SEVERE

    def test_severe_observed_is_severe(self):
        assert AlertClassifier.classify_threat_level("Severe", "Expected", "Observed") == ThreatLevel.SEVERE

    def test_severe_expected_likely_is_moderate(self):
        """Test that severe without immediacy or observation drops to moderate."""
        assert AlertClassifier.classify_threat_level("Severe", "Expected", "Likely") == ThreatLevel.MODERATE

    def test_nws_capitalization_is_accepted(self):
        """Test raw NWS enumeration casing."""
        assert AlertClassifier.classify_threat_level("Extreme", "Immediate", "Observed") == ThreatLevel.CRITICAL

    def test_missing_fields_are_minor(self):
        assert AlertClassifier.classify_threat_level(None, None, None) == ThreatLevel.MINOR
        assert AlertClassifier.classify_threat_level("Unknown", "Unknown", "Unknown") == ThreatLevel.MINOR


class TestSeverity:
    """Tests for display severity classification."""

    def test_extreme_is_critical(self):
        assert AlertClassifier.classify_severity("Extreme", "Heat Advisory") == ThreatLevel.CRITICAL

    def test_tornado_warning_is_always_critical(self):
        """Test event override when the raw severity is low."""
        assert AlertClassifier.classify_severity("Moderate", "Tornado Warning") == ThreatLevel.CRITICAL

    def test_watch_is_at_least_severe(self):
        assert AlertClassifier.classify_severity("Minor", "Tornado Watch") == ThreatLevel.SEVERE

    def test_moderate(self):
        assert AlertClassifier.classify_severity("Moderate", "Wind Advisory") == ThreatLevel.MODERATE

    def test_minor_and_unknown(self):
        assert AlertClassifier.classify_severity("Minor", "Special Weather Statement") == ThreatLevel.MINOR
        assert AlertClassifier.classify_severity(None, None) == ThreatLevel.MINOR


class TestEmergencyType:
    """Tests for emergency type classification."""

    @pytest.mark.parametrize("event,expected", [
        ("Tornado Warning", EmergencyType.TORNADO),
        ("Flash Flood Warning", EmergencyType.FLOODING),
        ("Hurricane Warning", EmergencyType.HURRICANE),
        ("Tropical Storm Watch", EmergencyType.HURRICANE),
        ("Severe Thunderstorm Warning", EmergencyType.SEVERE_WEATHER),
        ("Winter Storm Warning", EmergencyType.WINTER_STORM),
        ("Blizzard Warning", EmergencyType.WINTER_STORM),
        ("Red Flag Warning", EmergencyType.GENERAL),
        ("Fire Weather Watch", EmergencyType.WILDFIRE),
        ("Dense Fog Advisory", EmergencyType.GENERAL),
    ])
    def test_classify_emergency_type(self, event, expected):
        assert AlertClassifier.classify_emergency_type(event) == expected

    def test_missing_event_is_general(self):
        assert AlertClassifier.classify_emergency_type(None) == EmergencyType.GENERAL


class TestProtectiveActions:
    """Tests for action and evacuation derivation."""

    def test_tornado_warning_actions(self):
        actions = AlertClassifier.derive_action_required("Tornado Warning", ThreatLevel.CRITICAL)

        assert actions[0] == "SEEK IMMEDIATE SHELTER"
        assert "Stay away from windows" in actions

    def test_flash_flood_warning_actions(self):
        actions = AlertClassifier.derive_action_required("Flash Flood Warning", ThreatLevel.CRITICAL)

        assert "DO NOT DRIVE THROUGH FLOODED ROADS" in actions

    def test_generic_actions_for_severe(self):
        actions = AlertClassifier.derive_action_required("High Wind Warning", ThreatLevel.SEVERE)

        assert actions == ("Follow local emergency instructions", "Stay informed via emergency broadcasts")

    def test_no_actions_for_moderate(self):
        assert AlertClassifier.derive_action_required("Wind Advisory", ThreatLevel.MODERATE) == ()

    def test_evacuation_for_critical_hurricane(self):
        assert AlertClassifier.should_recommend_evacuation("Hurricane Warning", ThreatLevel.CRITICAL)

    def test_no_evacuation_below_critical(self):
        assert not AlertClassifier.should_recommend_evacuation("Hurricane Warning", ThreatLevel.SEVERE)

    def test_no_evacuation_for_tornado(self):
        assert not AlertClassifier.should_recommend_evacuation("Tornado Warning", ThreatLevel.CRITICAL)


class TestTimeToImpact:
    """Tests for time to impact and imminence."""

    def test_future_onset(self):
        onset = NOW + timedelta(minutes=5)

        assert AlertClassifier.compute_time_to_impact(onset, NOW) == 5 * 60 * 1000

    def test_past_onset_is_zero(self):
        onset = NOW - timedelta(minutes=5)

        assert AlertClassifier.compute_time_to_impact(onset, NOW) == 0

    def test_iso_string_onset(self):
        assert AlertClassifier.compute_time_to_impact("2025-05-20T22:00:00Z", NOW) == 3_600_000

    def test_missing_onset_is_infinite(self):
        assert math.isinf(AlertClassifier.compute_time_to_impact(None, NOW))
        assert math.isinf(AlertClassifier.compute_time_to_impact("not a date", NOW))

    def test_imminent_within_one_hour(self):
        assert AlertClassifier.is_imminent(NOW + timedelta(minutes=59), NOW)
        assert AlertClassifier.is_imminent(NOW + timedelta(hours=1), NOW)
        assert not AlertClassifier.is_imminent(NOW + timedelta(minutes=61), NOW)

    def test_unknown_onset_is_not_imminent(self):
        assert not AlertClassifier.is_imminent(None, NOW)
