"""
IncidentWatch - Constants and Reference Data
Static values used throughout the application.
"""

from typing import Dict, FrozenSet

# =============================================================================
# MEDIA
# =============================================================================

MEDIA_KIND_IMAGE = "image"
MEDIA_KIND_VIDEO = "video"

VIDEO_EXTENSIONS: FrozenSet[str] = frozenset({"mp4", "mov", "m4v", "3gp", "mkv", "webm"})
IMAGE_EXTENSIONS: FrozenSet[str] = frozenset({"jpg", "jpeg", "png", "gif", "webp", "heic", "heif", "bmp"})

DEFAULT_EXTENSIONS: Dict[str, str] = {
    MEDIA_KIND_IMAGE: "jpg",
    MEDIA_KIND_VIDEO: "mp4",
}

DEFAULT_CONTENT_TYPES: Dict[str, str] = {
    MEDIA_KIND_IMAGE: "image/jpeg",
    MEDIA_KIND_VIDEO: "video/mp4",
}

# =============================================================================
# REPORT DOCUMENT FIELDS
# =============================================================================

FIELD_DESCRIPTION = "description"
FIELD_MEDIA_URL = "mediaUrl"
FIELD_STORAGE_PATH = "storagePath"
FIELD_BUCKET = "bucket"
FIELD_MEDIA_TYPE = "mediaType"
FIELD_LOCATION = "location"
FIELD_CREATED_AT = "createdAt"
FIELD_APPROVED = "approved"

# =============================================================================
# RESUMABLE UPLOAD PROTOCOL
# =============================================================================

# Header names without the vendor prefix (see Settings.upload_header_prefix)
HEADER_UPLOAD_PROTOCOL = "Upload-Protocol"
HEADER_UPLOAD_COMMAND = "Upload-Command"
HEADER_UPLOAD_CONTENT_LENGTH = "Upload-Header-Content-Length"
HEADER_UPLOAD_CONTENT_TYPE = "Upload-Header-Content-Type"
HEADER_UPLOAD_URL = "Upload-URL"
HEADER_UPLOAD_OFFSET = "Upload-Offset"

UPLOAD_COMMAND_START = "start"
UPLOAD_COMMAND_FINALIZE = "upload, finalize"
