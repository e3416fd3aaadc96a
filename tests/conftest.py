"""
Pytest configuration and fixtures
"""
import dataclasses
import itertools
import json
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from incidentwatch.core.config import Settings
from incidentwatch.core.errors import PersistenceError, ReportNotFound, SubscriptionError
from incidentwatch.database.feed_store import FeedDocument, FeedStore
from incidentwatch.database.report_store import ReportStore
from incidentwatch.storage.blob_client import BlobStoreClient


TEST_BUCKET = "test-bucket"
SESSION_URL = "https://upload.test/session/1"


class FakeReportStore(ReportStore):
    """In-memory report store."""

    def __init__(self):
        self.reports = {}
        self.fail_writes = False
        self._ids = itertools.count(1)

    async def add_report(self, report):
        if self.fail_writes:
            raise PersistenceError("Report could not be saved: unavailable")
        stored = dataclasses.replace(
            report,
            id=f"report-{next(self._ids)}",
            created_at=datetime.now(timezone.utc),
        )
        self.reports[stored.id] = stored
        return stored

    async def get_report(self, report_id):
        if report_id not in self.reports:
            raise ReportNotFound(report_id)
        return self.reports[report_id]

    async def set_approved(self, report_id, approved):
        if report_id not in self.reports:
            raise ReportNotFound(report_id)
        self.reports[report_id] = dataclasses.replace(self.reports[report_id], approved=approved)

    async def delete_report(self, report_id):
        self.reports.pop(report_id, None)


class FakeListener:
    """One registered feed listener."""

    def __init__(self, query, on_snapshot, on_error):
        self.query = query
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True

    def unsubscribe(self):
        self.active = False


class FakeFeedStore(FeedStore):
    """
    Feed store driven by the test.

    With ``deliver_on_listen`` the matching documents are delivered
    synchronously as soon as a listener registers.
    """

    def __init__(self, documents=None, deliver_on_listen=False):
        self.documents = list(documents or [])
        self.deliver_on_listen = deliver_on_listen
        self.listeners = []
        self.reject_next = None

    @property
    def active(self):
        return [listener for listener in self.listeners if listener.active]

    @property
    def latest(self):
        return self.listeners[-1]

    def matching(self, query):
        return [
            doc for doc in self.documents
            if query.approved is None or bool(doc.data.get("approved")) is query.approved
        ]

    def listen(self, query, on_snapshot, on_error):
        if self.reject_next is not None:
            error, self.reject_next = self.reject_next, None
            raise error

        listener = FakeListener(query, on_snapshot, on_error)
        self.listeners.append(listener)
        if self.deliver_on_listen:
            on_snapshot(self.matching(query))
        return listener.unsubscribe

    def emit(self, listener=None, docs=None):
        listener = listener or self.latest
        listener.on_snapshot(self.matching(listener.query) if docs is None else docs)

    def fail(self, listener=None, code="failed-precondition", message="The query requires an index"):
        listener = listener or self.latest
        listener.on_error(SubscriptionError(code, message))


class FakeStorageBackend:
    """httpx.MockTransport handler emulating the blob store REST surface."""

    def __init__(self, bucket=TEST_BUCKET, header_prefix="X-Goog-"):
        self.bucket = bucket
        self.header_prefix = header_prefix
        self.requests = []
        self.objects = {}
        self.start_status = 200
        self.return_session_url = True
        self.finalize_status = 200
        self.finalize_body = None
        self.metadata_status = None
        self.delete_status = None
        self.download_tokens = "token-1,token-2"
        self._pending_name = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return self._start(request)
        if request.method == "PUT":
            return self._finalize(request)
        if request.method == "GET":
            return self._metadata(request)
        if request.method == "DELETE":
            return self._delete(request)
        return httpx.Response(405)

    def requests_by_method(self, method):
        return [request for request in self.requests if request.method == method]

    def metadata(self, name):
        return {
            "bucket": self.bucket,
            "name": name,
            "contentType": "image/jpeg",
            "downloadTokens": self.objects[name],
        }

    def _object_name(self, request):
        return request.url.path.split("/o/", 1)[1]

    def _start(self, request):
        if self.start_status != 200:
            return httpx.Response(self.start_status, text="permission denied")
        self._pending_name = json.loads(request.content)["name"]
        headers = {f"{self.header_prefix}Upload-URL": SESSION_URL} if self.return_session_url else {}
        return httpx.Response(200, headers=headers)

    def _finalize(self, request):
        if self.finalize_status != 200:
            return httpx.Response(self.finalize_status, text="upload rejected")
        if self.finalize_body is not None:
            return httpx.Response(200, text=self.finalize_body)
        self.objects[self._pending_name] = self.download_tokens
        return httpx.Response(200, json=self.metadata(self._pending_name))

    def _metadata(self, request):
        if self.metadata_status is not None:
            return httpx.Response(self.metadata_status, text="unavailable")
        name = self._object_name(request)
        if name not in self.objects:
            return httpx.Response(404, json={"error": {"code": 404, "message": "Not Found."}})
        return httpx.Response(200, json=self.metadata(name))

    def _delete(self, request):
        if self.delete_status is not None:
            return httpx.Response(self.delete_status, text="unavailable")
        name = self._object_name(request)
        if self.objects.pop(name, None) is None:
            return httpx.Response(404)
        return httpx.Response(204)


@pytest.fixture
def settings():
    """Settings isolated from the environment, with fast progress ticks."""
    return Settings(
        _env_file=None,
        storage_bucket=TEST_BUCKET,
        storage_auth_token=None,
        upload_header_prefix="X-Goog-",
        progress_tick_interval_ms=5,
        progress_initial=0.02,
        max_description_length=400,
    )


@pytest.fixture
def storage_backend():
    """Fake blob store backend."""
    return FakeStorageBackend()


@pytest.fixture
def blob_client(settings, storage_backend):
    """Blob store client wired to the fake backend."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(storage_backend))
    return BlobStoreClient(settings, http_client=http_client)


@pytest.fixture
def report_store():
    """Empty in-memory report store."""
    return FakeReportStore()


@pytest.fixture
def feed_documents():
    """Raw feed documents as stored, some with missing optional fields."""
    return [
        FeedDocument("r1", {
            "description": "Smoke over the ridge",
            "mediaUrl": "https://cdn.test/r1.jpg",
            "storagePath": "reports/r1.jpg",
            "bucket": TEST_BUCKET,
            "mediaType": "image",
            "location": {"latitude": -22.5, "longitude": -45.5},
            "createdAt": datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc),
            "approved": False,
        }),
        FeedDocument("r2", {
            "description": "Flooded underpass",
            "mediaUrl": "https://cdn.test/r2.mp4",
            "mediaType": "video",
            "approved": True,
        }),
        FeedDocument("r3", {"approved": False}),
    ]
