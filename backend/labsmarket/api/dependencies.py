"""
Shared FastAPI dependencies.
"""
from typing import Optional

from fastapi import HTTPException, status

from labsmarket.models.upload import StorageProvider
from labsmarket.services.upload_service import UploadService, create_upload_service

_upload_service: Optional[UploadService] = None


def get_upload_service() -> UploadService:
    """
    Dependency for routes that need the upload service.
    Usage: service: UploadService = Depends(get_upload_service)
    """
    global _upload_service
    if _upload_service is None:
        _upload_service = create_upload_service()
    return _upload_service


def parse_provider(provider: str) -> StorageProvider:
    """Path/form parameter to StorageProvider ('aws' or 'oort', any case)."""
    try:
        return StorageProvider.parse(provider)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
