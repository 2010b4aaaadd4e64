"""
Pydantic schemas for API request/response validation.
"""
from labsmarket.schemas.storage import (
    ConnectivityDetails,
    ConnectivityResult,
    ConnectionStatus,
    CredentialsUpdate,
    CredentialsResponse,
    StorageModeResponse,
    PresignRequest,
    PresignResponse,
    CorsRequest,
    CorsResponse,
)
from labsmarket.schemas.upload import (
    UploadRecordResponse,
    NotificationResponse,
    UploadResponse,
    UploadHistoryResponse,
    PointsResponse,
)

__all__ = [
    "ConnectivityDetails",
    "ConnectivityResult",
    "ConnectionStatus",
    "CredentialsUpdate",
    "CredentialsResponse",
    "StorageModeResponse",
    "PresignRequest",
    "PresignResponse",
    "CorsRequest",
    "CorsResponse",
    "UploadRecordResponse",
    "NotificationResponse",
    "UploadResponse",
    "UploadHistoryResponse",
    "PointsResponse",
]
