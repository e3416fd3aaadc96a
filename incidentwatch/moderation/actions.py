"""
Moderator actions on stored reports
Approve/unapprove and delete, with best-effort removal of the media object.
"""

import logging
from typing import Optional

import httpx

from incidentwatch.database.report_store import ReportStore
from incidentwatch.storage.blob_client import BlobStoreClient

logger = logging.getLogger(__name__)


class ModerationActions:
    """
    Writes performed from the moderation view.

    Concurrent edits by several moderators are not reconciled here; the
    store's last write wins.
    """

    def __init__(self, store: ReportStore, blob_client: BlobStoreClient):
        self.store = store
        self.blob_client = blob_client

    async def toggle_approval(self, report_id: str, approved: bool) -> bool:
        """
        Flip the approval flag.

        Args:
            report_id: Report to update
            approved: Flag as currently shown to the moderator

        Returns:
            The new flag value
        """
        new_value = not approved
        await self.store.set_approved(report_id, new_value)
        logger.info(f"Report {report_id} approved: {approved} -> {new_value}")
        return new_value

    async def delete_report(self, report_id: str, storage_path: Optional[str] = None, bucket: Optional[str] = None) -> None:
        """
        Delete a report and, when it has one, its media object.

        A failed media delete is logged and does not stop the record delete.

        Raises:
            PersistenceError: The report document could not be deleted
        """
        if storage_path:
            try:
                await self.blob_client.delete_object(storage_path, bucket or None)
            except httpx.HTTPError as e:
                logger.warning(f"Storage delete failed for {storage_path}: {e}")

        await self.store.delete_report(report_id)
        logger.info(f"Report deleted: {report_id}")
