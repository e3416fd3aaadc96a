"""
Media URL resolution for stored reports
Turns a report's stored media reference into a URL a client can fetch.
"""

import asyncio
import logging
from typing import Dict, Iterable

import httpx

from incidentwatch.core.errors import ResolutionError
from incidentwatch.crowdsource.models import Report
from incidentwatch.storage.blob_client import BlobStoreClient, CanonicalLocator

logger = logging.getLogger(__name__)


class MediaLocatorResolver:
    """
    Resolves fresh access URLs for report media.

    Holds no per-report state; ``resolve`` may run concurrently for any
    number of reports.
    """

    def __init__(self, client: BlobStoreClient):
        self.client = client

    async def fresh_url(self, storage_path: str, bucket: str = "") -> str:
        """
        Request a fresh download URL for a storage path.

        Raises:
            ResolutionError: Metadata lookup failed or carried no token
        """
        try:
            meta = await self.client.get_metadata(storage_path, bucket or None)
            locator = CanonicalLocator.from_metadata(meta)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise ResolutionError(storage_path, str(e)) from e

        if not locator.download_token:
            raise ResolutionError(storage_path, "no download token")
        return self.client.public_url(locator)

    async def resolve(self, report: Report) -> str:
        """
        URL for a report's media.

        Returns an empty string when nothing usable exists; callers render
        a placeholder in that case.
        """
        if report.storage_path:
            try:
                return await self.fresh_url(report.storage_path, report.bucket)
            except ResolutionError as e:
                logger.info(f"Falling back to stored media URL for {report.id}: {e}")
        return report.media_url or ""

    async def resolve_many(self, reports: Iterable[Report]) -> Dict[str, str]:
        """Resolve a batch concurrently; maps report id to URL."""
        reports = list(reports)
        urls = await asyncio.gather(*(self.resolve(report) for report in reports))
        return {report.id: url for report, url in zip(reports, urls)}
