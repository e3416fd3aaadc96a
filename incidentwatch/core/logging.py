"""
IncidentWatch - Logging Configuration
Centralized logging setup for the API process and background listeners.
"""

import logging
import sys
from typing import Iterable, Optional
from functools import lru_cache

from incidentwatch.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"

# Firestore snapshot callbacks run on SDK threads, so debug output names the thread
DEBUG_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"

# Transport and SDK loggers that are chatty at INFO
QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "urllib3",
    "multipart",
    "google.auth",
    "google.api_core.bidi",
    "google.cloud.firestore_v1.watch",
)


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    settings: Optional[Settings] = None,
    quiet: Iterable[str] = QUIET_LOGGERS
) -> logging.Logger:
    """
    Configure the ``incidentwatch`` logger hierarchy.

    Safe to call more than once (the app lifespan runs per TestClient
    context); the stdout handler is installed only once.

    Args:
        level: Log level name; defaults to ``settings.log_level``
        format_string: Custom format; defaults to the debug format when
            ``settings.debug`` is set
        settings: Application settings (defaults to the cached instance)
        quiet: Logger names raised to WARNING

    Returns:
        The ``incidentwatch`` logger
    """
    settings = settings or get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    log_format = format_string or (DEBUG_LOG_FORMAT if settings.debug else LOG_FORMAT)

    logger = logging.getLogger("incidentwatch")
    logger.setLevel(log_level)

    if not any(getattr(handler, "_incidentwatch", False) for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler._incidentwatch = True
        logger.addHandler(handler)
        logger.propagate = False

    for handler in logger.handlers:
        if getattr(handler, "_incidentwatch", False):
            handler.setFormatter(logging.Formatter(log_format, datefmt="%Y-%m-%d %H:%M:%S"))

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


@lru_cache()
def get_logger(name: str = "incidentwatch") -> logging.Logger:
    """Logger under the ``incidentwatch`` hierarchy, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
