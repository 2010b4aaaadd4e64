"""
Upload endpoints.

1. POST /uploads - Upload a file through the backend to AWS or OORT
2. GET /uploads/history - Uploads of a user, newest first
3. GET /uploads/points - Total points of a user

The response of POST /uploads carries the terminal stage of the upload
and the notification to show for it. Tracking failures still return 200
because the file itself was delivered.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status

from labsmarket.api.dependencies import get_upload_service, parse_provider
from labsmarket.schemas.upload import (
    NotificationResponse,
    PointsResponse,
    UploadHistoryResponse,
    UploadRecordResponse,
    UploadResponse,
)
from labsmarket.services.notifications import notification_for_outcome
from labsmarket.services.outcome import UploadOutcome, UploadStage
from labsmarket.services.upload_service import UploadService
from labsmarket.storage.validation import FilePayload

router = APIRouter()

_STAGE_STATUS = {
    UploadStage.VALIDATION: status.HTTP_400_BAD_REQUEST,
    UploadStage.CONFIGURATION: status.HTTP_400_BAD_REQUEST,
    UploadStage.CONNECTIVITY: status.HTTP_502_BAD_GATEWAY,
    UploadStage.TRANSFER: status.HTTP_502_BAD_GATEWAY,
    UploadStage.TRACKING: status.HTTP_200_OK,
    UploadStage.COMPLETE: status.HTTP_200_OK,
}


def _to_response(outcome: UploadOutcome) -> UploadResponse:
    notification = notification_for_outcome(outcome)
    result = outcome.result
    return UploadResponse(
        success=outcome.success,
        stage=outcome.stage.value,
        url=outcome.url,
        key=result.key if result is not None and result.success else None,
        error=outcome.error,
        status_code=result.status_code if result is not None else None,
        verified=result.verified if result is not None and result.success else None,
        points_awarded=outcome.points,
        attempts=outcome.attempts,
        record=UploadRecordResponse.model_validate(outcome.record) if outcome.record is not None else None,
        notification=NotificationResponse(
            title=notification.title,
            description=notification.description,
            variant=notification.variant.value,
        ),
    )


@router.post("", response_model=UploadResponse)
async def upload_file(
    response: Response,
    file: UploadFile = File(...),
    provider: str = Form("oort"),
    user_id: Optional[str] = Form(None),
    path: Optional[str] = Form(None),
    service: UploadService = Depends(get_upload_service),
):
    """
    Upload a file to the selected provider.

    Points are only awarded when user_id is given.
    """
    storage_provider = parse_provider(provider)
    name = file.filename or "upload"
    content_type = file.content_type or ""

    # Rejected on declared metadata, the body is never read
    declared = FilePayload(name=name, content_type=content_type, size=file.size)
    if file.size is not None and not service.validate(declared).valid:
        payload = declared
    else:
        payload = FilePayload(name=name, content_type=content_type, data=await file.read())

    outcome = await service.upload_file(payload, storage_provider, user_id=user_id, path=path)
    response.status_code = _STAGE_STATUS[outcome.stage]
    return _to_response(outcome)


@router.get("/history", response_model=UploadHistoryResponse)
async def upload_history(
    user_id: str = Query(..., min_length=1),
    limit: Optional[int] = Query(None, ge=1, le=500),
    service: UploadService = Depends(get_upload_service),
):
    """Uploads of a user, newest first. Empty when tracking is unavailable."""
    uploads = await service.history(user_id, limit)
    return UploadHistoryResponse(
        user_id=user_id,
        uploads=[UploadRecordResponse.model_validate(upload) for upload in uploads],
    )


@router.get("/points", response_model=PointsResponse)
async def upload_points(
    user_id: str = Query(..., min_length=1),
    service: UploadService = Depends(get_upload_service),
):
    """Total points earned from uploads."""
    total = await service.total_points(user_id)
    return PointsResponse(user_id=user_id, total_points=total)
