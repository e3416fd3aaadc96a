"""
Moderation feed synchronizer
Keeps exactly one live subscription to the report feed for the selected tab,
degrading from the ordered query to an unordered one when the store rejects it.
"""

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Dict

from incidentwatch.core.errors import SubscriptionError
from incidentwatch.crowdsource.models import Report
from incidentwatch.database.feed_store import FeedDocument, FeedQuery, FeedStore, Unsubscribe
from incidentwatch.storage.media_locator import MediaLocatorResolver

logger = logging.getLogger(__name__)


class QueryMode(str, Enum):
    """How the feed is currently queried."""
    ORDERED = "ordered"     # filter + createdAt descending
    FALLBACK = "fallback"   # filter only, no ordering guarantee
    ERROR = "error"         # terminal until refresh()


class FilterTab(str, Enum):
    """Moderation tab selecting a predicate on ``approved``."""
    ALL = "all"
    PENDING = "pending"
    APPROVED = "approved"

    @property
    def approved_filter(self) -> Optional[bool]:
        if self is FilterTab.PENDING:
            return False
        if self is FilterTab.APPROVED:
            return True
        return None

    @property
    def empty_message(self) -> str:
        """Text shown when the tab has no reports."""
        if self is FilterTab.PENDING:
            return "No pending reports found."
        if self is FilterTab.APPROVED:
            return "No approved reports found."
        return "No reports found."


# Automatic degradation: ORDERED fails over to FALLBACK, FALLBACK fails to ERROR
_ON_FAILURE: Dict[QueryMode, QueryMode] = {
    QueryMode.ORDERED: QueryMode.FALLBACK,
    QueryMode.FALLBACK: QueryMode.ERROR,
    QueryMode.ERROR: QueryMode.ERROR,
}

_handle_ids = itertools.count(1)


@dataclass(eq=False)
class SubscriptionHandle:
    """Token for one live listener. Pass it back to ``detach``."""
    tab: FilterTab
    mode: QueryMode
    id: int = field(default_factory=lambda: next(_handle_ids))
    active: bool = True
    _unsubscribe: Optional[Unsubscribe] = field(default=None, repr=False)

    def release(self) -> None:
        """Deactivate and unsubscribe. Safe to call more than once."""
        self.active = False
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()


DataCallback = Callable[[List[Report]], None]
DiagnosticCallback = Callable[[QueryMode, str], None]
LoadingCallback = Callable[[bool], None]


def _noop(*args) -> None:
    return None


class ModerationFeedSynchronizer:
    """
    Owns at most one live feed subscription.

    State machine:
        idle --attach(tab)--> ORDERED --listener error--> FALLBACK
        FALLBACK --listener error--> ERROR (no automatic reattach)
        any --detach()--> idle
        any --refresh()--> ORDERED for the last selected tab

    Every delivered batch replaces the previous report set wholesale.
    Callbacks from a released handle are ignored, so a superseded tab can
    never overwrite newer results.
    """

    def __init__(
        self,
        store: FeedStore,
        on_data: Optional[DataCallback] = None,
        on_diagnostic: Optional[DiagnosticCallback] = None,
        on_loading_change: Optional[LoadingCallback] = None,
        resolver: Optional[MediaLocatorResolver] = None
    ):
        """
        Initialize synchronizer.

        Args:
            store: Feed store providing snapshot listeners
            on_data: Called with the full report list on every delivery
            on_diagnostic: Called with (mode, last_error) when either changes
            on_loading_change: Called when the loading flag flips
            resolver: Media URL resolver for per-item refresh
        """
        self.store = store
        self.on_data = on_data or _noop
        self.on_diagnostic = on_diagnostic or _noop
        self.on_loading_change = on_loading_change or _noop
        self.resolver = resolver

        self._handle: Optional[SubscriptionHandle] = None
        self._tab: Optional[FilterTab] = None
        self._mode: Optional[QueryMode] = None
        self._last_error = ""
        self._last_diagnostic = None
        self._loading = False
        self.reports: List[Report] = []

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        return self._handle

    @property
    def tab(self) -> Optional[FilterTab]:
        return self._tab

    @property
    def mode(self) -> Optional[QueryMode]:
        """Current query mode; None while idle."""
        return self._mode

    @property
    def last_error(self) -> str:
        return self._last_error

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def is_idle(self) -> bool:
        return self._mode is None

    def attach(self, tab) -> SubscriptionHandle:
        """
        Subscribe to ``tab`` in ordered mode.

        Any existing subscription is released first.
        """
        tab = FilterTab(tab)
        self.detach()
        self._tab = tab
        self._last_error = ""
        return self._subscribe(tab, QueryMode.ORDERED)

    def detach(self, handle: Optional[SubscriptionHandle] = None) -> bool:
        """
        Release the live subscription and return to idle.

        Args:
            handle: Handle to release; a stale handle is ignored

        Returns:
            True if the synchronizer went idle
        """
        if handle is not None and handle is not self._handle:
            handle.release()
            return False

        current, self._handle = self._handle, None
        if current is not None:
            current.release()
            logger.debug(f"Feed listener {current.id} detached ({current.tab.value}, {current.mode.value})")
        self._mode = None
        self._set_loading(False)
        return True

    def refresh(self) -> SubscriptionHandle:
        """Release and reattach from ordered mode; the only exit from ERROR besides a new attach."""
        if self._tab is None:
            raise RuntimeError("refresh() called before any attach()")
        logger.info(f"Refreshing moderation feed ({self._tab.value})")
        return self.attach(self._tab)

    async def resolve_media(self, report: Report) -> str:
        """Fresh media URL for one report (empty string means placeholder)."""
        if self.resolver is None:
            return report.media_url or ""
        return await self.resolver.resolve(report)

    async def resolve_all(self) -> Dict[str, str]:
        """Fresh media URLs for the current report set."""
        if self.resolver is None:
            return {report.id: report.media_url for report in self.reports}
        return await self.resolver.resolve_many(self.reports)

    def _subscribe(self, tab: FilterTab, mode: QueryMode) -> SubscriptionHandle:
        handle = SubscriptionHandle(tab=tab, mode=mode)
        self._handle = handle
        self._mode = mode
        self._set_loading(True)

        query = FeedQuery(approved=tab.approved_filter, ordered=mode is QueryMode.ORDERED)
        logger.debug(f"Feed listener {handle.id} attaching ({tab.value}, {mode.value})")
        try:
            handle._unsubscribe = self.store.listen(
                query,
                on_snapshot=lambda docs: self._on_snapshot(handle, docs),
                on_error=lambda error: self._on_error(handle, error),
            )
        except SubscriptionError as e:
            self._on_error(handle, e)
        return self._handle or handle

    def _on_snapshot(self, handle: SubscriptionHandle, docs: List[FeedDocument]) -> None:
        if not handle.active or handle is not self._handle:
            return

        self.reports = [Report.from_document(doc.id, doc.data) for doc in docs]
        if handle.mode is QueryMode.ORDERED:
            self._last_error = ""
        self.on_data(list(self.reports))
        self._emit_diagnostic()
        self._set_loading(False)

    def _on_error(self, handle: SubscriptionHandle, error: SubscriptionError) -> None:
        if not handle.active or handle is not self._handle:
            return

        self._last_error = str(error)
        next_mode = _ON_FAILURE[handle.mode]

        handle.release()
        self._handle = None

        if next_mode is QueryMode.FALLBACK:
            logger.warning(f"Ordered feed query failed ({self._last_error}); retrying without ordering")
            self._mode = next_mode
            self._emit_diagnostic()
            self._subscribe(handle.tab, QueryMode.FALLBACK)
            return

        logger.error(f"Feed listener failed in {handle.mode.value} mode: {self._last_error}")
        self._mode = QueryMode.ERROR
        self._emit_diagnostic()
        self._set_loading(False)

    def _emit_diagnostic(self) -> None:
        diagnostic = (self._mode, self._last_error)
        if diagnostic != self._last_diagnostic:
            self._last_diagnostic = diagnostic
            self.on_diagnostic(*diagnostic)

    def _set_loading(self, loading: bool) -> None:
        if loading != self._loading:
            self._loading = loading
            self.on_loading_change(loading)
