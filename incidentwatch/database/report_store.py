"""
Report persistence for IncidentWatch
Writes and moderation updates against the ``reports`` collection.
"""

import logging
from abc import ABC, abstractmethod

from firebase_admin import firestore
from google.api_core.exceptions import GoogleAPIError, NotFound

from incidentwatch.core.constants import FIELD_APPROVED, FIELD_CREATED_AT
from incidentwatch.core.errors import PersistenceError, ReportNotFound
from incidentwatch.crowdsource.models import Report
from incidentwatch.database.connection import FirebaseConnection

logger = logging.getLogger(__name__)


def _reason(exc: GoogleAPIError) -> str:
    return getattr(exc, "message", None) or str(exc)


class ReportStore(ABC):
    """
    Document store holding submitted reports.

    Implementations raise PersistenceError for store failures and
    ReportNotFound for unknown ids.
    """

    @abstractmethod
    async def add_report(self, report: Report) -> Report:
        """
        Persist a new report.

        The store assigns the id and the server-side ``createdAt``; the
        returned report carries both.
        """

    @abstractmethod
    async def get_report(self, report_id: str) -> Report:
        """Fetch one report."""

    @abstractmethod
    async def set_approved(self, report_id: str, approved: bool) -> None:
        """Write the moderation flag."""

    @abstractmethod
    async def delete_report(self, report_id: str) -> None:
        """Remove the report document."""


class FirestoreReportStore(ReportStore):
    """ReportStore backed by Cloud Firestore through firebase-admin."""

    def __init__(self, connection: FirebaseConnection, collection: str = "reports"):
        """
        Initialize store.

        Args:
            connection: Firebase connection providing the async client
            collection: Collection holding report documents
        """
        self.connection = connection
        self.collection_name = collection
        self._client = None

    @property
    def collection(self):
        if self._client is None:
            self._client = self.connection.firestore_async_client()
        return self._client.collection(self.collection_name)

    async def add_report(self, report: Report) -> Report:
        payload = report.to_document()
        payload[FIELD_CREATED_AT] = firestore.SERVER_TIMESTAMP

        try:
            _, doc_ref = await self.collection.add(payload)
            snapshot = await doc_ref.get()
        except GoogleAPIError as e:
            logger.error(f"Report write failed: {e}")
            raise PersistenceError(f"Report could not be saved: {_reason(e)}") from e

        logger.info(f"Report stored: {doc_ref.id}")
        return Report.from_document(doc_ref.id, snapshot.to_dict())

    async def get_report(self, report_id: str) -> Report:
        try:
            snapshot = await self.collection.document(report_id).get()
        except GoogleAPIError as e:
            raise PersistenceError(f"Report could not be read: {_reason(e)}") from e

        if not snapshot.exists:
            raise ReportNotFound(report_id)
        return Report.from_document(snapshot.id, snapshot.to_dict())

    async def set_approved(self, report_id: str, approved: bool) -> None:
        try:
            await self.collection.document(report_id).update({FIELD_APPROVED: approved})
        except NotFound as e:
            raise ReportNotFound(report_id) from e
        except GoogleAPIError as e:
            raise PersistenceError(f"Report could not be updated: {_reason(e)}") from e

    async def delete_report(self, report_id: str) -> None:
        try:
            await self.collection.document(report_id).delete()
        except GoogleAPIError as e:
            raise PersistenceError(f"Report could not be deleted: {_reason(e)}") from e

