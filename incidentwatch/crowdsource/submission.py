"""
Report submission pipeline
Validates a citizen report, uploads its media through a resumable session,
and stores the report record only after the transfer succeeded.
"""

import logging
import uuid
from typing import Callable, List, Optional

from incidentwatch.core.config import Settings, get_settings
from incidentwatch.core.constants import DEFAULT_EXTENSIONS, IMAGE_EXTENSIONS, MEDIA_KIND_IMAGE, VIDEO_EXTENSIONS
from incidentwatch.core.errors import IncidentWatchError, PersistenceError, ValidationError
from incidentwatch.crowdsource.models import GeoPoint, MediaAsset, Report, ReportDraft, uri_extension
from incidentwatch.crowdsource.progress import ProgressCallback, ProgressEstimator
from incidentwatch.database.report_store import ReportStore
from incidentwatch.storage.upload_session import UploadSessionManager

logger = logging.getLogger(__name__)

EstimatorFactory = Callable[[], ProgressEstimator]


def media_extension(asset: MediaAsset) -> str:
    """
    File extension for the uploaded object.

    Taken from the uri path when recognized for the asset kind's family,
    otherwise ``jpg`` for images and ``mp4`` for videos.
    """
    ext = uri_extension(asset.uri)
    if ext in IMAGE_EXTENSIONS or ext in VIDEO_EXTENSIONS:
        return ext
    return DEFAULT_EXTENSIONS.get(asset.kind, DEFAULT_EXTENSIONS[MEDIA_KIND_IMAGE])


def build_remote_path(asset: MediaAsset, prefix: str = "reports", media_id: Optional[str] = None) -> str:
    """Fresh object name ``<prefix>/<uuid>.<ext>`` for an asset."""
    media_id = media_id or str(uuid.uuid4())
    return f"{prefix}/{media_id}.{media_extension(asset)}"


class ReportSubmissionPipeline:
    """
    Drives one report from validated input to a stored record.

    Steps: validate -> derive remote path -> start session -> transfer and
    finalize -> build public URL -> persist with ``approved=False``. Any
    failure aborts the run without persisting anything and resets progress.
    Nothing is retried; a new submission starts a new session and path.
    """

    def __init__(
        self,
        uploader: UploadSessionManager,
        store: ReportStore,
        settings: Optional[Settings] = None,
        estimator_factory: Optional[EstimatorFactory] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Initialize pipeline.

        Args:
            uploader: Resumable upload session manager
            store: Report document store
            settings: Application settings (defaults to the cached instance)
            estimator_factory: Builds a fresh ProgressEstimator per run
            on_progress: Progress callback used by the default estimator
        """
        self.uploader = uploader
        self.store = store
        self.settings = settings or get_settings()
        self.estimator_factory = estimator_factory or (
            lambda: ProgressEstimator.from_settings(self.settings, on_progress=on_progress)
        )

    def validate(
        self,
        asset: Optional[MediaAsset],
        description: Optional[str],
        location: Optional[GeoPoint]
    ) -> None:
        """
        Check every field before any network access.

        Raises:
            ValidationError: Naming all missing or invalid fields
        """
        invalid: List[str] = []

        if asset is None or not asset.is_readable():
            invalid.append("media")

        text = (description or "").strip()
        if not text or len(text) > self.settings.max_description_length:
            invalid.append("description")

        if location is None or not location.is_valid:
            invalid.append("location")

        if invalid:
            raise ValidationError(invalid)

    async def submit(
        self,
        asset: Optional[MediaAsset],
        description: Optional[str],
        location: Optional[GeoPoint]
    ) -> Report:
        """
        Submit an incident report.

        Args:
            asset: Picked photo or video
            description: Free-text description
            location: Reporter location

        Returns:
            Stored Report (id and createdAt assigned by the store)

        Raises:
            ValidationError: Input rejected before any side effect
            ProtocolError: Session start failed
            TransferFailed: Upload+finalize failed
            PersistenceError: Upload succeeded but the record was not stored
        """
        self.validate(asset, description, location)

        try:
            payload = await asset.read_bytes()
        except OSError as e:
            raise ValidationError(["media"]) from e

        remote_path = build_remote_path(asset, self.settings.remote_path_prefix)
        content_type = asset.content_type

        async with self.estimator_factory() as progress:
            try:
                session = await self.uploader.begin_session(remote_path, content_type, len(payload))
                locator = await self.uploader.transfer_and_finalize(session, payload)
            except IncidentWatchError as e:
                progress.abort()
                logger.error(f"Media upload failed for {remote_path}: {e}")
                raise

            progress.complete()
            media_url = self.uploader.client.public_url(locator)

            report = Report(
                id="",
                description=description.strip(),
                media_type=asset.kind,
                storage_path=remote_path,
                media_url=media_url,
                bucket=locator.bucket,
                location=location,
                approved=False,
            )

            try:
                stored = await self.store.add_report(report)
            except PersistenceError as e:
                progress.abort()
                logger.error(f"Report not stored; uploaded object left at {locator.bucket}/{locator.name}")
                raise PersistenceError(str(e), locator=locator, storage_path=remote_path) from e

        logger.info(f"Report submitted: {stored.id} ({asset.kind}, {remote_path})")
        return stored

    async def submit_draft(self, draft: ReportDraft) -> Report:
        """Submit a draft and clear it on success; the draft is untouched on failure."""
        report = await self.submit(draft.asset, draft.description, draft.location)
        draft.reset()
        return report
