"""
Logging configuration for Beacon.

Modules log through the standard library (`logging.getLogger(__name__)`);
structlog renders the records, as console output in development or JSON
lines in production.
"""

import logging
import sys
from typing import Optional

import structlog

POLLER_LOGGER_NAME = "beacon.poller"

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def _processors(json_output: bool) -> list:
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        return shared + [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return shared + [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    debug_weather: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines instead of console output
        log_file: Optional file that also receives plain-text records
        debug_weather: Log every poller decision at DEBUG
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
        handlers.append(file_handler)

    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
    get_poller_logger(debug_weather)

    structlog.configure(
        processors=_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger (typically `get_logger(__name__)`)."""
    return structlog.get_logger(name)


def get_poller_logger(debug_weather: bool = False) -> logging.Logger:
    """
    Get the logger injected into the weather poller.

    Args:
        debug_weather: Raise the poller logger to DEBUG regardless of the root level
    """
    poller_logger = logging.getLogger(POLLER_LOGGER_NAME)
    if debug_weather:
        poller_logger.setLevel(logging.DEBUG)
    return poller_logger
