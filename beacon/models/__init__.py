"""Data models for Beacon."""

from .alert import AlertLocationInfo, AlertSet, EmergencyType, NormalizedAlert, ThreatLevel
from .weather import (
    Conditions,
    ConditionsError,
    CurrentConditions,
    InvalidLocationError,
    Location,
    PollMode,
    WeatherBundle,
)

__all__ = [
    "AlertLocationInfo",
    "AlertSet",
    "EmergencyType",
    "NormalizedAlert",
    "ThreatLevel",
    "Conditions",
    "ConditionsError",
    "CurrentConditions",
    "InvalidLocationError",
    "Location",
    "PollMode",
    "WeatherBundle",
]
