"""
Citizen incident report data structures
Media assets picked by the reporter, the persisted report, and the draft form state.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any
from urllib.parse import unquote, urlparse

from incidentwatch.core.constants import (
    DEFAULT_CONTENT_TYPES,
    FIELD_APPROVED,
    FIELD_BUCKET,
    FIELD_CREATED_AT,
    FIELD_DESCRIPTION,
    FIELD_LOCATION,
    FIELD_MEDIA_TYPE,
    FIELD_MEDIA_URL,
    FIELD_STORAGE_PATH,
    MEDIA_KIND_IMAGE,
    MEDIA_KIND_VIDEO,
    VIDEO_EXTENSIONS,
)


def uri_extension(uri: str) -> str:
    """Lower-cased extension of the uri's last path segment, query string stripped."""
    path = (uri or "").split("?")[0].split("#")[0]
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def detect_media_kind(
    uri: str,
    type_hint: Optional[str] = None,
    mime_type: Optional[str] = None
) -> str:
    """
    Detect whether picked media is an image or a video.

    The picker's type hint wins, then the mime type, then the uri extension.
    Anything unrecognized is treated as an image.
    """
    hint = (type_hint or "").lower()
    if "video" in hint:
        return MEDIA_KIND_VIDEO
    if "image" in hint:
        return MEDIA_KIND_IMAGE

    mime = (mime_type or "").lower()
    if mime.startswith("video/"):
        return MEDIA_KIND_VIDEO
    if mime.startswith("image/"):
        return MEDIA_KIND_IMAGE

    return MEDIA_KIND_VIDEO if uri_extension(uri) in VIDEO_EXTENSIONS else MEDIA_KIND_IMAGE


@dataclass(frozen=True)
class GeoPoint:
    """Reporter location in decimal degrees."""
    latitude: float
    longitude: float

    @property
    def is_valid(self) -> bool:
        return -90 <= self.latitude <= 90 and -180 <= self.longitude <= 180

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_value(cls, value: Any) -> Optional["GeoPoint"]:
        """Build from a stored mapping or a Firestore GeoPoint-like object."""
        if value is None:
            return None
        if isinstance(value, GeoPoint):
            return value
        try:
            if isinstance(value, dict):
                return cls(float(value["latitude"]), float(value["longitude"]))
            return cls(float(value.latitude), float(value.longitude))
        except (KeyError, AttributeError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class MediaAsset:
    """
    Media picked from the camera or gallery.

    The kind is detected once when the asset is created and never changes.
    ``data`` holds the bytes when the media arrived in memory (e.g. an HTTP
    upload); otherwise the payload is read from ``uri``.
    """
    uri: str
    kind: str
    size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
    data: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def from_pick(
        cls,
        uri: str,
        type_hint: Optional[str] = None,
        mime_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
        data: Optional[bytes] = None
    ) -> "MediaAsset":
        """Create an asset from picker output, detecting its kind."""
        if size_bytes is None and data is not None:
            size_bytes = len(data)
        return cls(
            uri=uri,
            kind=detect_media_kind(uri, type_hint, mime_type),
            size_bytes=size_bytes,
            mime_type=mime_type or None,
            data=data,
        )

    @property
    def is_video(self) -> bool:
        return self.kind == MEDIA_KIND_VIDEO

    @property
    def content_type(self) -> str:
        """Declared mime type, else the default for the asset kind."""
        return self.mime_type or DEFAULT_CONTENT_TYPES.get(self.kind, DEFAULT_CONTENT_TYPES[MEDIA_KIND_IMAGE])

    @property
    def local_path(self) -> Optional[Path]:
        """Filesystem path for ``file://`` or bare path uris."""
        parsed = urlparse(self.uri or "")
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        if parsed.scheme == "" and self.uri:
            return Path(self.uri)
        return None

    def is_readable(self) -> bool:
        if self.data is not None:
            return True
        path = self.local_path
        return path is not None and path.is_file()

    async def read_bytes(self) -> bytes:
        """Full payload of the asset."""
        if self.data is not None:
            return self.data
        path = self.local_path
        if path is None:
            raise FileNotFoundError(f"Local file not found: {self.uri}")
        return await asyncio.to_thread(path.read_bytes)


@dataclass
class Report:
    """
    Incident report as stored in the ``reports`` collection.

    A report always points at its media through ``storage_path`` or a
    non-empty ``media_url``. ``approved`` only changes through moderation.
    """
    id: str
    description: str = ""
    media_type: str = MEDIA_KIND_IMAGE
    storage_path: Optional[str] = None
    media_url: str = ""
    bucket: str = ""
    location: Optional[GeoPoint] = None
    created_at: Optional[datetime] = None
    approved: bool = False

    @property
    def has_media(self) -> bool:
        return bool(self.storage_path) or bool(self.media_url)

    def to_document(self) -> Dict[str, Any]:
        """Persisted record shape (without the server-assigned createdAt)."""
        return {
            FIELD_DESCRIPTION: self.description,
            FIELD_MEDIA_URL: self.media_url,
            FIELD_STORAGE_PATH: self.storage_path,
            FIELD_BUCKET: self.bucket,
            FIELD_MEDIA_TYPE: self.media_type,
            FIELD_LOCATION: self.location.to_dict() if self.location else None,
            FIELD_APPROVED: self.approved,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "description": self.description,
            "media_type": self.media_type,
            "storage_path": self.storage_path,
            "media_url": self.media_url,
            "bucket": self.bucket,
            "location": self.location.to_dict() if self.location else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "approved": self.approved,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[Dict[str, Any]]) -> "Report":
        """
        Reshape a raw stored document into a canonical report view.

        Absent optional fields get defaults: empty description and media url,
        ``image`` media type, no location, storage path or timestamp.
        """
        data = data or {}
        created_at = data.get(FIELD_CREATED_AT)
        if not isinstance(created_at, datetime):
            to_datetime = getattr(created_at, "to_datetime", None)
            created_at = to_datetime() if callable(to_datetime) else None

        return cls(
            id=doc_id,
            description=data.get(FIELD_DESCRIPTION) or "",
            media_type=data.get(FIELD_MEDIA_TYPE) or MEDIA_KIND_IMAGE,
            storage_path=data.get(FIELD_STORAGE_PATH) or None,
            media_url=data.get(FIELD_MEDIA_URL) or "",
            bucket=data.get(FIELD_BUCKET) or "",
            location=GeoPoint.from_value(data.get(FIELD_LOCATION)),
            created_at=created_at,
            approved=bool(data.get(FIELD_APPROVED)),
        )


@dataclass
class ReportDraft:
    """Caller-owned form state for a report that has not been submitted yet."""
    asset: Optional[MediaAsset] = None
    description: str = ""
    location: Optional[GeoPoint] = None

    def reset(self) -> None:
        """Clear the form after a successful submission."""
        self.asset = None
        self.description = ""
        self.location = None
