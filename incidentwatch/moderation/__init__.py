"""
IncidentWatch - Moderation Module
Live moderation feed and moderator actions.
"""

from incidentwatch.moderation.feed_synchronizer import (
    FilterTab,
    ModerationFeedSynchronizer,
    QueryMode,
    SubscriptionHandle,
)
from incidentwatch.moderation.actions import ModerationActions

__all__ = [
    "FilterTab",
    "ModerationFeedSynchronizer",
    "QueryMode",
    "SubscriptionHandle",
    "ModerationActions",
]
