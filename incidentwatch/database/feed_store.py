"""
Live report feed for IncidentWatch
Snapshot listeners over the ``reports`` collection, delivered on the asyncio loop.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPIError, RetryError

from incidentwatch.core.constants import FIELD_APPROVED, FIELD_CREATED_AT
from incidentwatch.core.errors import SubscriptionError
from incidentwatch.database.connection import FirebaseConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedQuery:
    """
    Store-side feed query.

    ``approved`` of None means no predicate; ``ordered`` adds
    ``createdAt`` descending, which needs a composite index when combined
    with the predicate.
    """
    approved: Optional[bool] = None
    ordered: bool = True


@dataclass(frozen=True)
class FeedDocument:
    """Raw document delivered by a listener."""
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[FeedDocument]], None]
ErrorCallback = Callable[[SubscriptionError], None]
Unsubscribe = Callable[[], None]


class FeedStore(ABC):
    """
    Source of live query snapshots.

    Callbacks run on the event loop thread. After the returned unsubscribe
    callable returns, no further callbacks are made.
    """

    @abstractmethod
    def listen(
        self,
        query: FeedQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback
    ) -> Unsubscribe:
        """Register a listener; may raise SubscriptionError synchronously."""


def subscription_error_from(exc: Exception) -> SubscriptionError:
    """Map a listener failure to a SubscriptionError (e.g. ``failed-precondition``)."""
    status = getattr(exc, "grpc_status_code", None)
    if status is not None:
        code = status.name.lower().replace("_", "-")
    elif isinstance(exc, RetryError):
        code = "deadline-exceeded"
    elif isinstance(exc, GoogleAPIError) and getattr(exc, "code", None):
        code = str(exc.code)
    else:
        code = "unknown"
    return SubscriptionError(code, getattr(exc, "message", None) or str(exc))


class _FirestoreListener:
    """
    One Firestore snapshot listener bridged onto an asyncio loop.

    Firestore invokes snapshot callbacks on its own threads and has no error
    callback, so the query is read once (``limit(1)``) on a worker thread before the
    watch opens; a rejected query (missing composite index, permissions)
    fails that read and is reported through ``on_error``.
    """

    def __init__(self, query, loop: asyncio.AbstractEventLoop, on_snapshot: SnapshotCallback, on_error: ErrorCallback):
        self._query = query
        self._loop = loop
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._lock = threading.Lock()
        self._closed = False
        self._watch = None

    def start(self) -> None:
        future = self._loop.run_in_executor(None, self._open)
        future.add_done_callback(self._log_open_failure)

    def _open(self) -> None:
        try:
            self._query.limit(1).get()
            watch = self._query.on_snapshot(self._handle_snapshot)
        except GoogleAPIError as e:
            self._dispatch(self._on_error, subscription_error_from(e))
            return
        except Exception as e:
            logger.exception("Feed listener could not be opened")
            self._dispatch(self._on_error, subscription_error_from(e))
            return

        with self._lock:
            if not self._closed:
                self._watch = watch
                return
        watch.unsubscribe()

    @staticmethod
    def _log_open_failure(future: asyncio.Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Feed listener worker failed: {future.exception()!r}")

    def _handle_snapshot(self, docs, changes, read_time) -> None:
        documents = [FeedDocument(doc.id, doc.to_dict() or {}) for doc in docs]
        self._dispatch(self._on_snapshot, documents)

    def _dispatch(self, callback, payload) -> None:
        with self._lock:
            if self._closed:
                return
        try:
            self._loop.call_soon_threadsafe(self._deliver, callback, payload)
        except RuntimeError:
            logger.debug("Event loop closed; dropping feed callback")

    def _deliver(self, callback, payload) -> None:
        if not self._closed:
            callback(payload)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            watch, self._watch = self._watch, None
        if watch is not None:
            watch.unsubscribe()


class FirestoreFeedStore(FeedStore):
    """FeedStore backed by Firestore snapshot listeners."""

    def __init__(self, connection: FirebaseConnection, collection: str = "reports"):
        self.connection = connection
        self.collection_name = collection
        self._client = None

    def build_query(self, query: FeedQuery):
        if self._client is None:
            self._client = self.connection.firestore_client()
        fs_query = self._client.collection(self.collection_name)
        if query.approved is not None:
            fs_query = fs_query.where(filter=firestore.FieldFilter(FIELD_APPROVED, "==", query.approved))
        if query.ordered:
            fs_query = fs_query.order_by(FIELD_CREATED_AT, direction=firestore.Query.DESCENDING)
        return fs_query

    def listen(
        self,
        query: FeedQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback
    ) -> Unsubscribe:
        try:
            fs_query = self.build_query(query)
        except GoogleAPIError as e:
            raise subscription_error_from(e) from e

        listener = _FirestoreListener(fs_query, asyncio.get_running_loop(), on_snapshot, on_error)
        listener.start()
        logger.debug(f"Firestore listener opened: {query}")
        return listener.close
