"""Utility modules for Beacon."""

from .logging import setup_logging, get_logger, get_poller_logger
from .timing import format_time_to_impact, parse_iso_timestamp, utc_now

__all__ = [
    "setup_logging",
    "get_logger",
    "get_poller_logger",
    "format_time_to_impact",
    "parse_iso_timestamp",
    "utc_now",
]
