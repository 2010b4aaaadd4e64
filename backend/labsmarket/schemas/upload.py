"""
Pydantic schemas for upload endpoints.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from labsmarket.models.upload import StorageProvider


class UploadRecordResponse(BaseModel):
    """Schema for a tracked upload."""
    id: str
    user_id: str
    file_name: str
    file_size: int
    file_type: str
    storage_provider: StorageProvider
    upload_url: str
    points_awarded: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    title: str
    description: str
    variant: str


class UploadResponse(BaseModel):
    """Outcome of an upload request."""
    success: bool
    stage: str
    url: Optional[str] = None
    key: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    verified: Optional[bool] = None
    points_awarded: Optional[int] = None
    attempts: List[str] = []
    record: Optional[UploadRecordResponse] = None
    notification: NotificationResponse


class UploadHistoryResponse(BaseModel):
    user_id: str
    uploads: List[UploadRecordResponse]


class PointsResponse(BaseModel):
    user_id: str
    total_points: int
