"""
IncidentWatch - Error Taxonomy
Typed exceptions raised by the upload pipeline and the moderation feed.
"""

from typing import Iterable, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from incidentwatch.storage.blob_client import CanonicalLocator


class IncidentWatchError(Exception):
    """Base class for every error raised by incidentwatch."""


class ValidationError(IncidentWatchError):
    """
    Submission input rejected before any network call.

    Carries every offending field, not just the first one found.
    """

    def __init__(self, fields: Iterable[str]):
        self.fields: List[str] = list(fields)
        super().__init__(f"Missing or invalid fields: {', '.join(self.fields)}")


class ProtocolError(IncidentWatchError):
    """Resumable session start handshake failed or was malformed."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        self.status = status
        self.body = body
        detail = f"{message} [{status if status is not None else 'no response'}]"
        super().__init__(f"{detail}: {body}" if body else detail)


class TransferFailed(IncidentWatchError):
    """Upload+finalize request did not return 200."""

    def __init__(self, status: Optional[int], body: str = ""):
        self.status = status
        self.body = body
        detail = f"Upload failed [{status if status is not None else 'no response'}]"
        super().__init__(f"{detail}: {body}" if body else detail)


class SessionStateError(IncidentWatchError):
    """Illegal transition requested on an upload session."""


class PersistenceError(IncidentWatchError):
    """
    Report metadata could not be written.

    When raised after a successful transfer, ``locator`` and ``storage_path``
    identify the uploaded object, which is left in the blob store.
    """

    def __init__(
        self,
        message: str,
        locator: Optional["CanonicalLocator"] = None,
        storage_path: Optional[str] = None,
    ):
        self.locator = locator
        self.storage_path = storage_path
        super().__init__(message)


class ReportNotFound(IncidentWatchError):
    """No report document with the given id."""

    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__(f"Report not found: {report_id}")


class SubscriptionError(IncidentWatchError):
    """A live feed listener failed."""

    def __init__(self, code: str = "", message: str = ""):
        self.code = code
        self.message = message
        super().__init__(f"{code} {message}".strip())


class ResolutionError(IncidentWatchError):
    """A fresh access URL could not be obtained for a storage path."""

    def __init__(self, storage_path: str, reason: str = ""):
        self.storage_path = storage_path
        self.reason = reason
        detail = f"Could not resolve {storage_path}"
        super().__init__(f"{detail}: {reason}" if reason else detail)
