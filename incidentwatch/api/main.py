"""
IncidentWatch - REST API

FastAPI application for citizen incident submission and report moderation,
including a WebSocket moderation feed.

Run with: uvicorn incidentwatch.api.main:app --reload
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional, List

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from incidentwatch import __version__
from incidentwatch.core.config import get_settings
from incidentwatch.core.errors import (
    PersistenceError,
    ProtocolError,
    ReportNotFound,
    TransferFailed,
    ValidationError,
)
from incidentwatch.core.logging import get_logger, setup_logging
from incidentwatch.crowdsource.models import GeoPoint, MediaAsset, Report
from incidentwatch.crowdsource.submission import ReportSubmissionPipeline
from incidentwatch.database.connection import FirebaseConnection
from incidentwatch.database.feed_store import FeedStore, FirestoreFeedStore
from incidentwatch.database.report_store import FirestoreReportStore, ReportStore
from incidentwatch.moderation.actions import ModerationActions
from incidentwatch.moderation.feed_synchronizer import FilterTab, ModerationFeedSynchronizer
from incidentwatch.storage.blob_client import BlobStoreClient
from incidentwatch.storage.media_locator import MediaLocatorResolver
from incidentwatch.storage.upload_session import UploadSessionManager

logger = get_logger(__name__)


# ============================================================================
# Services
# ============================================================================

@dataclass
class Services:
    """Collaborators shared by the request handlers."""
    blob_client: BlobStoreClient
    report_store: ReportStore
    feed_store: FeedStore
    pipeline: ReportSubmissionPipeline
    actions: ModerationActions
    resolver: MediaLocatorResolver


@lru_cache()
def get_services() -> Services:
    """Build the Firebase-backed services once per process."""
    settings = get_settings()
    connection = FirebaseConnection(settings=settings)
    blob_client = BlobStoreClient(settings)
    report_store = FirestoreReportStore(connection, settings.reports_collection)

    return Services(
        blob_client=blob_client,
        report_store=report_store,
        feed_store=FirestoreFeedStore(connection, settings.reports_collection),
        pipeline=ReportSubmissionPipeline(UploadSessionManager(blob_client), report_store, settings),
        actions=ModerationActions(report_store, blob_client),
        resolver=MediaLocatorResolver(blob_client),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    if get_services.cache_info().currsize:
        await get_services().blob_client.aclose()


# FastAPI app
app = FastAPI(
    title="IncidentWatch",
    description="Citizen incident reporting with resumable media upload and live moderation feed",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Pydantic Models
# ============================================================================

class LocationModel(BaseModel):
    """Report location."""
    latitude: float
    longitude: float


class ReportResponse(BaseModel):
    """Stored incident report."""
    id: str
    description: str
    media_type: str
    storage_path: Optional[str]
    media_url: str
    bucket: str
    location: Optional[LocationModel]
    created_at: Optional[str]
    approved: bool


class ApprovalResponse(BaseModel):
    """Result of an approval toggle."""
    id: str
    approved: bool


class MediaUrlResponse(BaseModel):
    """Resolved media URL; empty means render a placeholder."""
    id: str
    url: str


class HealthResponse(BaseModel):
    """API health check response."""
    status: str
    version: str
    timestamp: str


# ============================================================================
# Helper Functions
# ============================================================================

def to_response(report: Report) -> ReportResponse:
    return ReportResponse(**report.to_dict())


def upload_to_asset(filename: str, content_type: Optional[str], data: bytes) -> MediaAsset:
    """Build a MediaAsset from an uploaded file; generic mime types are ignored."""
    mime = (content_type or "").lower()
    if not (mime.startswith("image/") or mime.startswith("video/")):
        mime = None
    return MediaAsset.from_pick(uri=filename or "", mime_type=mime, data=data)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc), "fields": exc.fields})


@app.exception_handler(ProtocolError)
@app.exception_handler(TransferFailed)
async def upload_error_handler(request: Request, exc):
    return JSONResponse(status_code=502, content={"detail": str(exc), "status": exc.status})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=503, content={"detail": str(exc), "storage_path": exc.storage_path})


@app.exception_handler(ReportNotFound)
async def not_found_handler(request: Request, exc: ReportNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


# ============================================================================
# System Routes
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Check API health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ============================================================================
# Report Routes
# ============================================================================

@app.post("/api/v1/reports", response_model=ReportResponse, status_code=201, tags=["Reports"])
async def create_report(
    description: str = Form(""),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    media: Optional[UploadFile] = File(None),
    services: Services = Depends(get_services),
):
    """
    Submit an incident report with a photo or video.

    All missing fields are reported together with status 422.
    """
    asset = None
    if media is not None:
        data = await media.read()
        if data:
            asset = upload_to_asset(media.filename, media.content_type, data)

    location = None
    if latitude is not None and longitude is not None:
        location = GeoPoint(latitude, longitude)

    report = await services.pipeline.submit(asset, description, location)
    return to_response(report)


@app.get("/api/v1/reports/{report_id}", response_model=ReportResponse, tags=["Reports"])
async def get_report(report_id: str, services: Services = Depends(get_services)):
    """Get a single report."""
    return to_response(await services.report_store.get_report(report_id))


@app.get("/api/v1/reports/{report_id}/media", response_model=MediaUrlResponse, tags=["Reports"])
async def get_report_media(report_id: str, services: Services = Depends(get_services)):
    """Fresh media URL for a report."""
    report = await services.report_store.get_report(report_id)
    return MediaUrlResponse(id=report.id, url=await services.resolver.resolve(report))


# ============================================================================
# Moderation Routes
# ============================================================================

@app.put("/api/v1/reports/{report_id}/approval", response_model=ApprovalResponse, tags=["Moderation"])
async def toggle_approval(report_id: str, services: Services = Depends(get_services)):
    """Approve a pending report or withdraw an approval."""
    report = await services.report_store.get_report(report_id)
    approved = await services.actions.toggle_approval(report.id, report.approved)
    return ApprovalResponse(id=report.id, approved=approved)


@app.delete("/api/v1/reports/{report_id}", status_code=204, response_class=Response, tags=["Moderation"])
async def delete_report(report_id: str, services: Services = Depends(get_services)):
    """Delete a report and its media."""
    report = await services.report_store.get_report(report_id)
    await services.actions.delete_report(report.id, report.storage_path, report.bucket)
    return Response(status_code=204)


@app.websocket("/api/v1/moderation/feed")
async def moderation_feed(websocket: WebSocket, tab: str = "all", services: Services = Depends(get_services)):
    """
    Live moderation feed.

    Server events: ``data``, ``diagnostic``, ``loading``, ``error``.
    Client messages: ``{"action": "refresh"}`` and ``{"action": "tab", "tab": "pending"}``.
    """
    try:
        selected = FilterTab(tab)
    except ValueError:
        await websocket.close(code=1008, reason=f"Unknown tab: {tab}")
        return

    await websocket.accept()
    logger.info(f"Moderation feed connected ({selected.value})")
    events: asyncio.Queue = asyncio.Queue()

    def on_data(reports: List[Report]) -> None:
        current = synchronizer.tab or selected
        events.put_nowait({
            "type": "data",
            "tab": current.value,
            "reports": [report.to_dict() for report in reports],
            "empty_message": "" if reports else current.empty_message,
        })

    synchronizer = ModerationFeedSynchronizer(
        services.feed_store,
        on_data=on_data,
        on_diagnostic=lambda mode, last_error: events.put_nowait(
            {"type": "diagnostic", "mode": mode.value if mode else None, "last_error": last_error}
        ),
        on_loading_change=lambda loading: events.put_nowait({"type": "loading", "loading": loading}),
        resolver=services.resolver,
    )

    async def pump() -> None:
        while True:
            await websocket.send_json(await events.get())

    sender = asyncio.create_task(pump())
    synchronizer.attach(selected)
    try:
        while True:
            message = await websocket.receive_json()
            action = message.get("action") if isinstance(message, dict) else None
            if action == "refresh":
                synchronizer.refresh()
            elif action == "tab":
                try:
                    synchronizer.attach(message.get("tab"))
                except ValueError:
                    events.put_nowait({"type": "error", "detail": f"Unknown tab: {message.get('tab')}"})
            else:
                events.put_nowait({"type": "error", "detail": f"Unknown action: {action}"})
    except WebSocketDisconnect:
        logger.info("Moderation feed disconnected")
    finally:
        synchronizer.detach()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
