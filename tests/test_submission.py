"""
Tests for the report submission pipeline
"""
import re
import pytest

from incidentwatch.core.errors import PersistenceError, ProtocolError, TransferFailed, ValidationError
from incidentwatch.crowdsource.models import GeoPoint, MediaAsset, ReportDraft
from incidentwatch.crowdsource.submission import ReportSubmissionPipeline, build_remote_path, media_extension
from incidentwatch.storage.blob_client import CanonicalLocator
from incidentwatch.storage.upload_session import UploadSessionManager

from conftest import TEST_BUCKET


REMOTE_PATH = re.compile(r"^reports/[0-9a-f-]{36}\.jpg$")


class TestRemotePath:
    """Test suite for remote path derivation."""

    def test_extension_from_uri(self):
        """Test a recognized extension is kept, lower-cased."""
        asset = MediaAsset.from_pick("x/y.MP4?a=1", type_hint="video")

        assert media_extension(asset) == "mp4"
        assert build_remote_path(asset, media_id="abc") == "reports/abc.mp4"

    def test_default_extension_per_kind(self):
        """Test uris without a usable extension fall back per kind."""
        video = MediaAsset.from_pick("content://media/42", type_hint="video")
        image = MediaAsset.from_pick("content://media/43")

        assert media_extension(video) == "mp4"
        assert media_extension(image) == "jpg"

    def test_fresh_path_per_call(self):
        """Test each call yields a new object name."""
        asset = MediaAsset.from_pick("a.jpg")

        assert build_remote_path(asset) != build_remote_path(asset)
        assert REMOTE_PATH.match(build_remote_path(asset))


class TestSubmissionPipeline:
    """Test suite for end-to-end submission."""

    @pytest.fixture(autouse=True)
    def _pipeline(self, settings, blob_client, report_store, storage_backend):
        self.progress = []
        self.store = report_store
        self.backend = storage_backend
        self.pipeline = ReportSubmissionPipeline(
            UploadSessionManager(blob_client),
            report_store,
            settings,
            on_progress=self.progress.append,
        )

    def setup_method(self):
        self.location = GeoPoint(-22.5, -45.5)

    def _photo(self, tmp_path, name="a.jpg"):
        path = tmp_path / name
        path.write_bytes(b"\xff\xd8\xff\xe0photo")
        return MediaAsset.from_pick(path.as_uri())

    @pytest.mark.asyncio
    async def test_validation_names_every_field(self):
        """Test all missing fields are reported together without network calls."""
        with pytest.raises(ValidationError) as exc_info:
            await self.pipeline.submit(None, "   ", None)

        assert exc_info.value.fields == ["media", "description", "location"]
        assert self.backend.requests == []
        assert self.store.reports == {}

    @pytest.mark.asyncio
    async def test_validation_rejects_bad_values(self, tmp_path):
        """Test unreadable media, overlong text and out-of-range location are rejected."""
        missing = MediaAsset.from_pick((tmp_path / "missing.jpg").as_uri())

        with pytest.raises(ValidationError) as exc_info:
            await self.pipeline.submit(missing, "x" * 401, GeoPoint(120, 0))

        assert exc_info.value.fields == ["media", "description", "location"]
        assert self.backend.requests == []

    @pytest.mark.asyncio
    async def test_submit_stores_pending_report(self, tmp_path):
        """Test a photo report is uploaded and stored unapproved."""
        report = await self.pipeline.submit(self._photo(tmp_path), "  Smoke near the school  ", self.location)

        assert REMOTE_PATH.match(report.storage_path)
        assert report.approved is False
        assert report.media_type == "image"
        assert report.description == "Smoke near the school"
        assert report.bucket == TEST_BUCKET
        assert report.location == self.location
        assert report.created_at is not None
        assert report.media_url.endswith("?alt=media&token=token-1")
        assert report.media_url.startswith(f"https://firebasestorage.googleapis.com/v0/b/{TEST_BUCKET}/o/reports%2F")
        assert self.store.reports[report.id] == report

    @pytest.mark.asyncio
    async def test_submit_request_sequence(self, tmp_path):
        """Test exactly one START and one FINALIZE are sent."""
        await self.pipeline.submit(self._photo(tmp_path), "Smoke", self.location)

        assert [request.method for request in self.backend.requests] == ["POST", "PUT"]
        assert self.backend.requests[1].content == b"\xff\xd8\xff\xe0photo"

    @pytest.mark.asyncio
    async def test_progress_reaches_one_only_on_success(self, tmp_path):
        """Test progress stays below the ceiling until completion."""
        await self.pipeline.submit(self._photo(tmp_path), "Smoke", self.location)

        assert self.progress[-1] == 1.0
        assert all(value < 0.9 for value in self.progress[:-1])

    @pytest.mark.asyncio
    async def test_start_failure_persists_nothing(self, tmp_path):
        """Test a rejected START aborts the run."""
        self.backend.start_status = 401

        with pytest.raises(ProtocolError):
            await self.pipeline.submit(self._photo(tmp_path), "Smoke", self.location)

        assert self.store.reports == {}
        assert self.progress[-1] == 0.0
        assert self.backend.requests_by_method("PUT") == []

    @pytest.mark.asyncio
    async def test_transfer_failure_persists_nothing(self, tmp_path):
        """Test a failed FINALIZE aborts the run."""
        self.backend.finalize_status = 500

        with pytest.raises(TransferFailed):
            await self.pipeline.submit(self._photo(tmp_path), "Smoke", self.location)

        assert self.store.reports == {}
        assert self.progress[-1] == 0.0

    @pytest.mark.asyncio
    async def test_persistence_failure_reports_uploaded_object(self, tmp_path):
        """Test a failed record write names the object left in the blob store."""
        self.store.fail_writes = True

        with pytest.raises(PersistenceError) as exc_info:
            await self.pipeline.submit(self._photo(tmp_path), "Smoke", self.location)

        error = exc_info.value
        assert REMOTE_PATH.match(error.storage_path)
        assert error.locator.name == error.storage_path
        assert error.locator.bucket == TEST_BUCKET
        assert error.storage_path in self.backend.objects
        assert self.progress[-1] == 0.0

    @pytest.mark.asyncio
    async def test_retry_uses_new_path(self, tmp_path):
        """Test a second attempt after a failure starts a fresh session and path."""
        asset = self._photo(tmp_path)
        self.backend.finalize_status = 500
        with pytest.raises(TransferFailed):
            await self.pipeline.submit(asset, "Smoke", self.location)

        self.backend.finalize_status = 200
        report = await self.pipeline.submit(asset, "Smoke", self.location)

        first, second = self.backend.requests_by_method("POST")
        assert first.url != second.url
        assert report.storage_path in str(second.url).replace("%2F", "/")

    @pytest.mark.asyncio
    async def test_video_keeps_extension(self, tmp_path):
        """Test a picked video keeps its extension and gets the video content type."""
        path = tmp_path / "clip.MOV"
        path.write_bytes(b"video")
        asset = MediaAsset.from_pick(path.as_uri(), type_hint="video")

        report = await self.pipeline.submit(asset, "Flood", self.location)

        assert report.media_type == "video"
        assert report.storage_path.endswith(".mov")
        assert self.backend.requests[1].headers["Content-Type"] == "video/mp4"

    @pytest.mark.asyncio
    async def test_submit_draft_resets_on_success(self, tmp_path):
        """Test the draft is cleared after a stored submission."""
        draft = ReportDraft(self._photo(tmp_path), "Smoke", self.location)

        await self.pipeline.submit_draft(draft)

        assert draft.asset is None
        assert draft.description == ""
        assert draft.location is None

    @pytest.mark.asyncio
    async def test_submit_draft_kept_on_failure(self, tmp_path):
        """Test the draft survives a failed submission."""
        self.backend.start_status = 500
        asset = self._photo(tmp_path)
        draft = ReportDraft(asset, "Smoke", self.location)

        with pytest.raises(ProtocolError):
            await self.pipeline.submit_draft(draft)

        assert draft.asset is asset
        assert draft.description == "Smoke"


class TestSubmissionEndToEnd:
    """Test suite for a full photo report against a fresh bucket."""

    @pytest.mark.asyncio
    async def test_photo_report(self, settings, report_store, tmp_path):
        """Test a picked photo goes through START, FINALIZE and persistence."""
        import httpx

        from conftest import FakeStorageBackend
        from incidentwatch.storage.blob_client import BlobStoreClient

        backend = FakeStorageBackend(bucket="b")
        backend.download_tokens = "tok"
        client = BlobStoreClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)))
        pipeline = ReportSubmissionPipeline(UploadSessionManager(client), report_store, settings)

        path = tmp_path / "a.jpg"
        path.write_bytes(b"kaza-photo")
        draft = ReportDraft(MediaAsset.from_pick(path.as_uri(), type_hint="image"), "kaza", GeoPoint(41.0, 29.0))

        report = await pipeline.submit_draft(draft)

        start, finalize = backend.requests
        assert start.headers["X-Goog-Upload-Header-Content-Type"] == "image/jpeg"
        assert REMOTE_PATH.match(report.storage_path)
        assert finalize.content == b"kaza-photo"
        assert report.media_url == client.public_url(
            CanonicalLocator("b", report.storage_path, "tok")
        )
        assert report_store.reports[report.id].approved is False
        assert draft.asset is None
