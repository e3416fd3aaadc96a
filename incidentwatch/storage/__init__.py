"""
IncidentWatch - Blob Storage Module
Blob store REST client, resumable upload sessions and media URL resolution.
"""

from incidentwatch.storage.blob_client import (
    BlobStoreClient,
    CanonicalLocator,
)
from incidentwatch.storage.upload_session import (
    UploadSession,
    UploadSessionManager,
    UploadState,
)
from incidentwatch.storage.media_locator import MediaLocatorResolver

__all__ = [
    # Client
    "BlobStoreClient",
    "CanonicalLocator",
    # Upload sessions
    "UploadSession",
    "UploadSessionManager",
    "UploadState",
    # Resolution
    "MediaLocatorResolver",
]
