"""
Tests for time helpers.
"""

import math
from datetime import datetime, timezone

from beacon.utils.timing import format_time_to_impact, parse_iso_timestamp


class TestParseIsoTimestamp:
    """Tests for ISO timestamp parsing."""

    def test_zulu(self):
        dt = parse_iso_timestamp("2025-01-20T15:30:00Z")

        assert dt == datetime(2025, 1, 20, 15, 30, tzinfo=timezone.utc)

    def test_offset(self):
        dt = parse_iso_timestamp("2025-01-20T15:30:00-05:00")

        assert dt == datetime(2025, 1, 20, 20, 30, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        dt = parse_iso_timestamp("2025-01-20T15:30:00")

        assert dt.tzinfo == timezone.utc

    def test_invalid(self):
        assert parse_iso_timestamp("yesterday") is None
        assert parse_iso_timestamp("") is None
        assert parse_iso_timestamp(None) is None


class TestFormatTimeToImpact:
    """Tests for time-to-impact display."""

    def test_unknown(self):
        assert format_time_to_impact(math.inf) == "Unknown"
        assert format_time_to_impact(None) == "Unknown"

    def test_now(self):
        assert format_time_to_impact(0) == "NOW"
        assert format_time_to_impact(30_000) == "NOW"

    def test_minutes(self):
        assert format_time_to_impact(45 * 60_000) == "45m"

    def test_hours_and_minutes(self):
        assert format_time_to_impact(2 * 3_600_000 + 15 * 60_000) == "2h 15m"
