"""
IncidentWatch - Database Module
Firestore-backed report persistence and live feed listeners.
"""

from .connection import FirebaseConnection
from .report_store import ReportStore, FirestoreReportStore
from .feed_store import FeedStore, FeedQuery, FeedDocument, FirestoreFeedStore

__all__ = [
    "FirebaseConnection",
    "ReportStore",
    "FirestoreReportStore",
    "FeedStore",
    "FeedQuery",
    "FeedDocument",
    "FirestoreFeedStore",
]
