"""
IncidentWatch - Crowdsource Module
Citizen incident reports, picked media and upload progress.

The submission pipeline lives in ``incidentwatch.crowdsource.submission``.
"""

from incidentwatch.crowdsource.models import (
    GeoPoint,
    MediaAsset,
    Report,
    ReportDraft,
    detect_media_kind,
)
from incidentwatch.crowdsource.progress import ProgressEstimator

__all__ = [
    # Models
    "GeoPoint",
    "MediaAsset",
    "Report",
    "ReportDraft",
    "detect_media_kind",
    # Progress
    "ProgressEstimator",
]
