"""Alert classification and parsing for NWS alerts."""

from .alert_classifier import AlertClassifier
from .alert_parser import AlertParser

__all__ = ["AlertClassifier", "AlertParser"]
