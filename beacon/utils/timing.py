"""
Time helpers for Beacon.

Parses NWS API ISO 8601 timestamps and renders time-to-impact values
(milliseconds) for display.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60_000
MS_PER_HOUR = 3_600_000


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp string to datetime.

    Handles various ISO formats including:
    - 2025-01-20T15:30:00Z
    - 2025-01-20T15:30:00+00:00
    - 2025-01-20T15:30:00-05:00

    Args:
        timestamp_str: ISO timestamp string

    Returns:
        Aware datetime if valid, None otherwise
    """
    if not timestamp_str or not isinstance(timestamp_str, str):
        return None

    try:
        dt = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Failed to parse ISO timestamp: '{timestamp_str}'")
        return None

    # If no timezone info, assume UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO 8601, passing None through."""
    return dt.isoformat() if dt else None


def format_time_to_impact(time_to_impact: float) -> str:
    """
    Get human-readable time until impact.

    Args:
        time_to_impact: Milliseconds until onset, or math.inf when unknown

    Returns:
        "Unknown", "NOW", "2h 15m" or "45m"
    """
    if time_to_impact is None or math.isinf(time_to_impact):
        return "Unknown"
    if time_to_impact <= 0:
        return "NOW"

    hours, remainder = divmod(int(time_to_impact), MS_PER_HOUR)
    minutes = remainder // MS_PER_MINUTE

    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return "NOW"
