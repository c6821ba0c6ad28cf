"""
Tests for the cached, retrying alert fetcher.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx

from beacon.models.alert import ThreatLevel
from beacon.models.weather import ConditionsError, CurrentConditions, Location
from beacon.services.alert_fetcher import ALERTS_UNAVAILABLE, CONDITIONS_UNAVAILABLE, AlertFetcher
from beacon.services.nws_api_client import NWSAPIClient


LOCATION = Location(40.0, -75.0)
FORECAST_URL = "https://api.weather.gov/gridpoints/PHI/49,75/forecast"

POINT = {
    "properties": {
        "gridId": "PHI",
        "gridX": 49,
        "gridY": 75,
        "county": "https://api.weather.gov/zones/county/PAC029",
        "forecast": FORECAST_URL,
    }
}


def iso(dt: datetime) -> str:
    return dt.isoformat()


def tornado_feature():
    now = datetime.now(timezone.utc)
    return {
        "properties": {
            "id": "urn:oid:tornado",
            "event": "Tornado Warning",
            "severity": "Extreme",
            "urgency": "Immediate",
            "certainty": "Observed",
            "onset": iso(now + timedelta(minutes=5)),
            "expires": iso(now + timedelta(minutes=45)),
            "areaDesc": "Chester, PA",
        }
    }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeNWS:
    """MockTransport handler recording calls per endpoint.

    Canned replies are (status, json payload) pairs; the last alerts reply
    repeats once the others are used up.
    """

    def __init__(self, alerts_responses=None, forecast=None):
        self.alerts_responses = list(alerts_responses or [])
        self.forecast = forecast
        self.calls = {"points": 0, "alerts": 0, "forecast": 0}

    def __call__(self, request):
        path = request.url.path
        if path.startswith("/points/"):
            self.calls["points"] += 1
            return self._respond((200, POINT))
        if path == "/alerts/active":
            self.calls["alerts"] += 1
            if len(self.alerts_responses) > 1:
                return self._respond(self.alerts_responses.pop(0))
            return self._respond(self.alerts_responses[0])
        if path.endswith("/forecast"):
            self.calls["forecast"] += 1
            return self._respond(self.forecast or (500, None))
        return self._respond((404, None))

    @staticmethod
    def _respond(reply):
        status, payload = reply
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, json=payload)


def make_fetcher(nws, clock=None, sleeps=None):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    client = NWSAPIClient(
        base_url="https://api.weather.gov",
        user_agent="BeaconTest/1.0",
        transport=httpx.MockTransport(nws),
    )
    return AlertFetcher(
        client=client,
        cache_ttl=30,
        max_attempts=3,
        backoff_seconds=1.0,
        imminent_threshold_seconds=3600,
        clock=clock or FakeClock(),
        sleep=fake_sleep,
    )


def run(fetcher, coro_factory):
    async def scenario():
        try:
            return await coro_factory()
        finally:
            await fetcher.close()
    return asyncio.run(scenario())


class TestGetAlerts:
    """Tests for alert fetching."""

    def test_normalizes_alerts(self):
        nws = FakeNWS([(200, {"features": [tornado_feature()]})])
        fetcher = make_fetcher(nws)

        alert_set = run(fetcher, lambda: fetcher.get_alerts(LOCATION))

        assert not alert_set.failed
        assert len(alert_set.alerts) == 1
        alert = alert_set.alerts[0]
        assert alert.threat_level == ThreatLevel.CRITICAL
        assert alert.is_imminent
        assert "SEEK IMMEDIATE SHELTER" in alert.action_required
        assert alert_set.location.county == "PAC029"
        assert alert_set.location.grid_id == "PHI"
        assert alert_set.location.grid_x == 49

    def test_second_call_within_ttl_uses_cache(self):
        """Test that two calls within 30 seconds hit upstream once."""
        nws = FakeNWS([(200, {"features": []})])
        clock = FakeClock()
        fetcher = make_fetcher(nws, clock=clock)

        async def scenario():
            first = await fetcher.get_alerts(LOCATION)
            clock.now += 29
            second = await fetcher.get_alerts(LOCATION)
            return first, second

        first, second = run(fetcher, scenario)

        assert first is second
        assert nws.calls["alerts"] == 1
        assert fetcher.get_cache_stats() == {"total_entries": 1, "valid_entries": 1}

    def test_cache_expires_after_ttl(self):
        nws = FakeNWS([(200, {"features": []})])
        clock = FakeClock()
        fetcher = make_fetcher(nws, clock=clock)

        async def scenario():
            await fetcher.get_alerts(LOCATION)
            clock.now += 31
            await fetcher.get_alerts(LOCATION)

        run(fetcher, scenario)

        assert nws.calls["alerts"] == 2

    def test_cache_is_per_location(self):
        nws = FakeNWS([(200, {"features": []})])
        fetcher = make_fetcher(nws)

        async def scenario():
            await fetcher.get_alerts(LOCATION)
            await fetcher.get_alerts(Location(41.0, -75.0))

        run(fetcher, scenario)

        assert nws.calls["alerts"] == 2

    def test_integer_and_float_coordinates_share_cache(self):
        nws = FakeNWS([(200, {"features": []})])
        fetcher = make_fetcher(nws)

        async def scenario():
            await fetcher.get_alerts(Location(40, -75))
            await fetcher.get_alerts(Location(40.0, -75.0))

        run(fetcher, scenario)

        assert nws.calls["alerts"] == 1
        assert fetcher.get_cache_stats()["total_entries"] == 1

    def test_clear_cache(self):
        nws = FakeNWS([(200, {"features": []})])
        fetcher = make_fetcher(nws)

        async def scenario():
            await fetcher.get_alerts(LOCATION)
            fetcher.clear_cache()
            await fetcher.get_alerts(LOCATION)

        run(fetcher, scenario)

        assert nws.calls["alerts"] == 2

    def test_retries_with_exponential_backoff(self):
        nws = FakeNWS([
            (503, None),
            (503, None),
            (200, {"features": [tornado_feature()]}),
        ])
        sleeps = []
        fetcher = make_fetcher(nws, sleeps=sleeps)

        alert_set = run(fetcher, lambda: fetcher.get_alerts(LOCATION))

        assert not alert_set.failed
        assert len(alert_set.alerts) == 1
        assert nws.calls["alerts"] == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_retries_return_error_set(self):
        nws = FakeNWS([(500, None)])
        sleeps = []
        fetcher = make_fetcher(nws, sleeps=sleeps)

        alert_set = run(fetcher, lambda: fetcher.get_alerts(LOCATION))

        assert alert_set.failed
        assert alert_set.error == ALERTS_UNAVAILABLE
        assert alert_set.alerts == ()
        assert alert_set.location.county == "Unknown"
        assert nws.calls["alerts"] == 3
        assert sleeps == [1.0, 2.0]

    def test_failures_are_not_cached(self):
        nws = FakeNWS([
            (500, None),
            (500, None),
            (500, None),
            (200, {"features": []}),
        ])
        fetcher = make_fetcher(nws)

        async def scenario():
            failed = await fetcher.get_alerts(LOCATION)
            recovered = await fetcher.get_alerts(LOCATION)
            return failed, recovered

        failed, recovered = run(fetcher, scenario)

        assert failed.failed
        assert not recovered.failed
        assert nws.calls["alerts"] == 4

    def test_rate_limit_is_retried(self):
        nws = FakeNWS([
            (429, None),
            (200, {"features": []}),
        ])
        fetcher = make_fetcher(nws)

        alert_set = run(fetcher, lambda: fetcher.get_alerts(LOCATION))

        assert not alert_set.failed
        assert nws.calls["alerts"] == 2


class TestGetCurrentConditions:
    """Tests for current conditions."""

    def test_first_forecast_period(self):
        forecast = (200, {"properties": {"periods": [{
            "temperature": 68,
            "temperatureUnit": "F",
            "windSpeed": "10 mph",
            "windDirection": "SW",
            "shortForecast": "Thunderstorms",
            "detailedForecast": "Thunderstorms likely after 5pm.",
            "isDaytime": True,
        }]}})
        nws = FakeNWS([(200, {"features": []})], forecast=forecast)
        fetcher = make_fetcher(nws)

        conditions = run(fetcher, lambda: fetcher.get_current_conditions(LOCATION))

        assert isinstance(conditions, CurrentConditions)
        assert conditions.temperature == 68
        assert conditions.short_forecast == "Thunderstorms"
        assert conditions.is_daytime is True
        assert conditions.error is None

    def test_failure_yields_error_marker(self):
        nws = FakeNWS([(200, {"features": []})])
        fetcher = make_fetcher(nws)

        conditions = run(fetcher, lambda: fetcher.get_current_conditions(LOCATION))

        assert isinstance(conditions, ConditionsError)
        assert conditions.error == CONDITIONS_UNAVAILABLE
        assert nws.calls["forecast"] == 1

    def test_empty_periods(self):
        forecast = (200, {"properties": {"periods": []}})
        nws = FakeNWS([(200, {"features": []})], forecast=forecast)
        fetcher = make_fetcher(nws)

        conditions = run(fetcher, lambda: fetcher.get_current_conditions(LOCATION))

        assert conditions.error == "Current conditions unavailable"
