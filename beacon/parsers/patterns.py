"""
Event-name keyword tables for classifying NWS alerts.

All keywords are lower-case and are matched as substrings of the lower-cased
event name (e.g. "Tornado Warning" contains "tornado warning").
"""

from ..models.alert import EmergencyType


# =============================================================================
# SEVERITY KEYWORDS
# =============================================================================

# Events treated as critical regardless of the NWS severity field
ALWAYS_EXTREME_EVENTS: tuple[str, ...] = (
    "tornado warning",
    "flash flood warning",
    "severe thunderstorm warning",
    "hurricane warning",
    "blizzard warning",
    "ice storm warning",
)

# Events treated as at least severe
ALWAYS_SEVERE_EVENTS: tuple[str, ...] = (
    "tornado watch",
    "flash flood watch",
    "severe thunderstorm watch",
    "hurricane watch",
    "winter storm warning",
    "high wind warning",
)


# =============================================================================
# EMERGENCY TYPE KEYWORDS
# =============================================================================

# Checked in order, first match wins. "Tornado" must precede "flood" etc.
EMERGENCY_TYPE_KEYWORDS: tuple[tuple[EmergencyType, tuple[str, ...]], ...] = (
    (EmergencyType.TORNADO, ("tornado",)),
    (EmergencyType.FLOODING, ("flood",)),
    (EmergencyType.HURRICANE, ("hurricane", "tropical storm")),
    (EmergencyType.SEVERE_WEATHER, ("thunderstorm", "hail")),
    (EmergencyType.WINTER_STORM, ("winter", "blizzard", "ice")),
    (EmergencyType.WILDFIRE, ("fire",)),
    (EmergencyType.EARTHQUAKE, ("earthquake",)),
)


# =============================================================================
# PROTECTIVE ACTIONS
# =============================================================================

# Event-specific actions, checked in order
EVENT_ACTIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("tornado warning", (
        "SEEK IMMEDIATE SHELTER",
        "Go to lowest floor, interior room",
        "Stay away from windows",
    )),
    ("flash flood warning", (
        "DO NOT DRIVE THROUGH FLOODED ROADS",
        "Move to higher ground immediately",
        "Avoid low-lying areas",
    )),
    ("severe thunderstorm warning", (
        "Seek indoor shelter",
        "Avoid windows and electrical equipment",
        "Do not go outside",
    )),
)

# Fallback for other critical/severe alerts
GENERIC_ACTIONS: tuple[str, ...] = (
    "Follow local emergency instructions",
    "Stay informed via emergency broadcasts",
)


# =============================================================================
# EVACUATION KEYWORDS
# =============================================================================

EVACUATION_EVENTS: tuple[str, ...] = (
    "hurricane warning",
    "wildfire warning",
    "flood warning",
    "dam break",
    "levee failure",
    "evacuation order",
)


def event_matches(event_lower: str, keywords: tuple[str, ...]) -> bool:
    """Check if any keyword is a substring of the lower-cased event name."""
    return any(keyword in event_lower for keyword in keywords)
