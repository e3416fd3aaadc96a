"""
Resumable upload sessions for IncidentWatch

Two-phase upload against the blob store:

1. START  - POST declaring the object name, size and content type; the store
            answers with a session URL in the ``Upload-URL`` header.
2. FINALIZE - a single PUT of the whole payload at offset 0 with the combined
            ``upload, finalize`` command; the store answers with the object
            metadata (bucket, name, downloadTokens).

There is no chunking and no partial retry. A failed session is discarded;
the caller starts over with a fresh remote path.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, FrozenSet

import httpx

from incidentwatch.core.constants import (
    HEADER_UPLOAD_COMMAND,
    HEADER_UPLOAD_CONTENT_LENGTH,
    HEADER_UPLOAD_CONTENT_TYPE,
    HEADER_UPLOAD_OFFSET,
    HEADER_UPLOAD_PROTOCOL,
    HEADER_UPLOAD_URL,
    UPLOAD_COMMAND_FINALIZE,
    UPLOAD_COMMAND_START,
)
from incidentwatch.core.errors import ProtocolError, SessionStateError, TransferFailed
from incidentwatch.storage.blob_client import BlobStoreClient, CanonicalLocator

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    """Lifecycle of an upload session."""
    STARTED = "started"
    TRANSFERRING = "transferring"
    FINALIZED = "finalized"
    FAILED = "failed"


# Allowed transitions; FINALIZED and FAILED are terminal
_TRANSITIONS: Dict[UploadState, FrozenSet[UploadState]] = {
    UploadState.STARTED: frozenset({UploadState.TRANSFERRING}),
    UploadState.TRANSFERRING: frozenset({UploadState.FINALIZED, UploadState.FAILED}),
    UploadState.FINALIZED: frozenset(),
    UploadState.FAILED: frozenset(),
}


@dataclass
class UploadSession:
    """One negotiated resumable upload. Never reused across attempts."""
    remote_path: str
    content_type: str
    size_bytes: int
    session_url: Optional[str] = None
    state: UploadState = UploadState.STARTED

    def transition(self, new_state: UploadState) -> None:
        """Move to ``new_state`` or raise SessionStateError."""
        if new_state not in _TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Upload session for {self.remote_path} cannot go from "
                f"{self.state.value} to {new_state.value}"
            )
        self.state = new_state

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]


class UploadSessionManager:
    """
    Executes the resumable upload protocol.

    No retries are attempted here; every failure is raised to the caller.
    """

    def __init__(self, client: BlobStoreClient):
        """
        Initialize session manager.

        Args:
            client: Blob store client used for every request
        """
        self.client = client

    async def begin_session(
        self,
        remote_path: str,
        content_type: str,
        size_bytes: int
    ) -> UploadSession:
        """
        Start a resumable upload session.

        Args:
            remote_path: Object name inside the bucket
            content_type: MIME type of the payload
            size_bytes: Exact number of bytes that will be sent

        Returns:
            UploadSession in the STARTED state carrying the session URL

        Raises:
            ProtocolError: Non-2xx status, missing session URL or transport failure
        """
        headers = {
            self.client.header(HEADER_UPLOAD_PROTOCOL): "resumable",
            self.client.header(HEADER_UPLOAD_COMMAND): UPLOAD_COMMAND_START,
            self.client.header(HEADER_UPLOAD_CONTENT_LENGTH): str(size_bytes),
            self.client.header(HEADER_UPLOAD_CONTENT_TYPE): content_type,
            "Content-Type": "application/json; charset=UTF-8",
            **self.client.auth_headers(),
        }

        logger.info(f"Starting upload session: {remote_path} ({size_bytes} bytes, {content_type})")
        try:
            response = await self.client.http.post(
                self.client.upload_start_url(remote_path),
                headers=headers,
                json={"name": remote_path, "contentType": content_type},
            )
        except httpx.HTTPError as e:
            raise ProtocolError("Session start failed", body=str(e)) from e

        if not response.is_success:
            raise ProtocolError("Session start failed", status=response.status_code, body=response.text)

        session_url = response.headers.get(self.client.header(HEADER_UPLOAD_URL))
        if not session_url:
            raise ProtocolError("No upload URL returned", status=response.status_code, body=response.text)

        return UploadSession(
            remote_path=remote_path,
            content_type=content_type,
            size_bytes=size_bytes,
            session_url=session_url,
        )

    async def transfer_and_finalize(self, session: UploadSession, payload: bytes) -> CanonicalLocator:
        """
        Send the entire payload and finalize the object in one request.

        Args:
            session: Session returned by begin_session, still STARTED
            payload: Complete object bytes

        Returns:
            CanonicalLocator for the stored object

        Raises:
            SessionStateError: Session already used
            TransferFailed: Non-200 status, unreadable metadata or transport failure
        """
        if not session.session_url:
            raise SessionStateError(f"Upload session for {session.remote_path} has no session URL")
        session.transition(UploadState.TRANSFERRING)

        headers = {
            self.client.header(HEADER_UPLOAD_COMMAND): UPLOAD_COMMAND_FINALIZE,
            self.client.header(HEADER_UPLOAD_OFFSET): "0",
            "Content-Type": session.content_type,
            **self.client.auth_headers(),
        }

        try:
            response = await self.client.http.put(session.session_url, headers=headers, content=payload)
        except httpx.HTTPError as e:
            session.transition(UploadState.FAILED)
            raise TransferFailed(None, str(e)) from e

        if response.status_code != 200:
            session.transition(UploadState.FAILED)
            raise TransferFailed(response.status_code, response.text)

        try:
            locator = CanonicalLocator.from_metadata(response.json())
        except (ValueError, KeyError, TypeError) as e:
            session.transition(UploadState.FAILED)
            raise TransferFailed(response.status_code, f"Unreadable upload metadata: {response.text}") from e

        session.transition(UploadState.FINALIZED)
        logger.info(f"Upload finalized: {locator.bucket}/{locator.name}")

        return locator
