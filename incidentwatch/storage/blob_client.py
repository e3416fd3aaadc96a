"""
Blob store REST client for IncidentWatch

Thin async wrapper over the Firebase Storage REST surface: object URLs,
metadata lookups, deletes and public download URL construction. The
resumable upload handshake lives in ``upload_session``.

API reference: https://firebase.google.com/docs/storage/web/upload-files
"""

import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any
from urllib.parse import quote

import httpx

from incidentwatch.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves untouched besides alphanumerics and -_.~
_URI_COMPONENT_SAFE = "!*'()"


def encode_object_name(name: str) -> str:
    """Percent-encode an object name as a single URL path component."""
    return quote(name, safe=_URI_COMPONENT_SAFE)


@dataclass(frozen=True)
class CanonicalLocator:
    """Authoritative identification of an uploaded object."""
    bucket: str
    name: str
    download_token: str

    @classmethod
    def from_metadata(cls, meta: Dict[str, Any]) -> "CanonicalLocator":
        """
        Build from an object metadata response.

        ``downloadTokens`` may hold several comma-separated tokens; the first is used.
        """
        tokens = str(meta.get("downloadTokens") or "")
        return cls(
            bucket=str(meta["bucket"]),
            name=str(meta["name"]),
            download_token=tokens.split(",")[0].strip(),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "bucket": self.bucket,
            "name": self.name,
            "download_token": self.download_token,
        }


class BlobStoreClient:
    """
    Async client for the blob store REST API.

    Usage:
        async with BlobStoreClient() as client:
            url = client.public_url(locator)

    The underlying ``httpx.AsyncClient`` can be injected (tests pass one
    backed by ``httpx.MockTransport``); an injected client is not closed here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        bucket: Optional[str] = None
    ):
        """
        Initialize blob store client.

        Args:
            settings: Application settings (defaults to the cached instance)
            http_client: Pre-built async HTTP client
            bucket: Bucket override (defaults to settings.storage_bucket)
        """
        self.settings = settings or get_settings()
        self.bucket = bucket or self.settings.storage_bucket
        self.header_prefix = self.settings.upload_header_prefix
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.settings.http_timeout_seconds)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def http(self) -> httpx.AsyncClient:
        return self._client

    def header(self, name: str) -> str:
        """Vendor-prefixed upload header name."""
        return f"{self.header_prefix}{name}"

    def auth_headers(self) -> Dict[str, str]:
        token = self.settings.storage_auth_token
        return {"Authorization": f"Bearer {token}"} if token else {}

    def bucket_url(self, bucket: Optional[str] = None) -> str:
        return f"{self.settings.storage_base_url}/{bucket or self.bucket}/o"

    def object_url(self, name: str, bucket: Optional[str] = None) -> str:
        """Metadata/delete endpoint of a single object."""
        return f"{self.bucket_url(bucket)}/{encode_object_name(name)}"

    def upload_start_url(self, name: str) -> str:
        return f"{self.bucket_url()}?name={encode_object_name(name)}&uploadType=resumable"

    def public_url(self, locator: CanonicalLocator) -> str:
        """Public download URL for an uploaded object."""
        return (
            f"{self.object_url(locator.name, locator.bucket)}"
            f"?alt=media&token={locator.download_token}"
        )

    async def get_metadata(self, name: str, bucket: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch object metadata.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status
        """
        response = await self._client.get(self.object_url(name, bucket), headers=self.auth_headers())
        response.raise_for_status()
        return response.json()

    async def delete_object(self, name: str, bucket: Optional[str] = None) -> bool:
        """
        Delete an object.

        Returns:
            True when the object is gone (deleted now or already missing)

        Raises:
            httpx.HTTPError: On transport failure or any other non-2xx status
        """
        response = await self._client.delete(self.object_url(name, bucket), headers=self.auth_headers())
        if response.status_code == 404:
            logger.info(f"Object already absent: {name}")
            return True
        response.raise_for_status()
        logger.info(f"Object deleted: {name}")
        return True
