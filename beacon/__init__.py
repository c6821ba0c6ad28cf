"""Beacon weather alert polling engine."""

__version__ = "1.0.0"
