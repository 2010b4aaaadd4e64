"""
Business logic services.
"""
from labsmarket.services.points_service import UploadTracker, calculate_upload_points
from labsmarket.services.upload_service import UploadService, create_upload_service
from labsmarket.services.outcome import UploadOutcome, UploadStage

__all__ = [
    "UploadTracker",
    "calculate_upload_points",
    "UploadService",
    "create_upload_service",
    "UploadOutcome",
    "UploadStage",
]
