"""
IncidentWatch - Core Utilities
Central configuration, logging, constants and the error taxonomy.
"""

from incidentwatch.core.config import settings, get_settings
from incidentwatch.core.errors import (
    IncidentWatchError,
    ValidationError,
    ProtocolError,
    TransferFailed,
    SessionStateError,
    PersistenceError,
    ReportNotFound,
    SubscriptionError,
    ResolutionError,
)

__all__ = [
    "settings",
    "get_settings",
    "IncidentWatchError",
    "ValidationError",
    "ProtocolError",
    "TransferFailed",
    "SessionStateError",
    "PersistenceError",
    "ReportNotFound",
    "SubscriptionError",
    "ResolutionError",
]
