"""
Storage provider endpoints.

Per provider ('aws' or 'oort'):
- credentials: view (masked), save override, reset to defaults
- mode: real vs simulated uploads
- connectivity: run the probe, read the last result
- presign: presigned PUT URL for direct client uploads
- cors: apply the direct-upload CORS rules to the bucket
"""
import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, HTTPException, status

from labsmarket.api.dependencies import get_upload_service, parse_provider
from labsmarket.schemas.storage import (
    ConnectionStatus,
    ConnectivityResult,
    CorsRequest,
    CorsResponse,
    CredentialsResponse,
    CredentialsUpdate,
    PresignRequest,
    PresignResponse,
    StorageModeResponse,
)
from labsmarket.services.upload_service import UploadService
from labsmarket.storage.credentials import StorageCredentials
from labsmarket.storage.errors import ConfigurationError, FileValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


def _credentials_response(service: UploadService, provider) -> CredentialsResponse:
    return CredentialsResponse.build(
        provider=provider.value,
        credentials=service.get_credentials(provider),
        using_custom=service.is_using_custom_credentials(provider),
        missing_fields=service.missing_credential_fields(provider),
    )


@router.get("/{provider}/credentials", response_model=CredentialsResponse)
async def get_credentials(provider: str, service: UploadService = Depends(get_upload_service)):
    """Active credentials with the access key masked and the secret withheld."""
    return _credentials_response(service, parse_provider(provider))


@router.put("/{provider}/credentials", response_model=CredentialsResponse)
async def save_credentials(
    provider: str,
    request: CredentialsUpdate,
    service: UploadService = Depends(get_upload_service),
):
    """Save a credentials override (replaces any previous override)."""
    storage_provider = parse_provider(provider)
    service.save_credentials(
        storage_provider,
        StorageCredentials(
            access_key=request.access_key,
            secret_key=request.secret_key,
            bucket=request.bucket,
            region=request.region,
            endpoint=request.endpoint,
        ),
    )
    return _credentials_response(service, storage_provider)


@router.delete("/{provider}/credentials", response_model=CredentialsResponse)
async def reset_credentials(provider: str, service: UploadService = Depends(get_upload_service)):
    """Drop the override and fall back to the default credentials."""
    storage_provider = parse_provider(provider)
    service.reset_credentials(storage_provider)
    return _credentials_response(service, storage_provider)


@router.get("/{provider}/mode", response_model=StorageModeResponse)
async def get_mode(provider: str, service: UploadService = Depends(get_upload_service)):
    storage_provider = parse_provider(provider)
    return StorageModeResponse(provider=storage_provider.value, use_real=service.is_real(storage_provider))


@router.post("/{provider}/mode/toggle", response_model=StorageModeResponse)
async def toggle_mode(provider: str, service: UploadService = Depends(get_upload_service)):
    """Switch between real and simulated uploads."""
    storage_provider = parse_provider(provider)
    use_real = service.toggle_mode(storage_provider)
    return StorageModeResponse(provider=storage_provider.value, use_real=use_real)


@router.post("/{provider}/test", response_model=ConnectivityResult)
async def test_connection(provider: str, service: UploadService = Depends(get_upload_service)):
    """Run the connectivity probe against the active credentials."""
    return await service.test_connection(parse_provider(provider))


@router.get("/{provider}/status", response_model=ConnectionStatus)
async def connection_status(provider: str, service: UploadService = Depends(get_upload_service)):
    """Result of the last connectivity probe."""
    return service.connection_status(parse_provider(provider))


@router.post("/{provider}/presign", response_model=PresignResponse)
async def presign_upload(
    provider: str,
    request: PresignRequest,
    service: UploadService = Depends(get_upload_service),
):
    """
    Generate a presigned PUT URL.

    The client uploads with:
        PUT {upload_url}
        Content-Type: {content_type}
    """
    storage_provider = parse_provider(provider)
    try:
        presigned = service.presign_upload(
            storage_provider,
            request.file_name,
            request.content_type,
            path=request.path,
            expires_in=request.expires_in,
        )
    except (FileValidationError, ConfigurationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Failed to generate presigned URL for {storage_provider.value}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to generate upload URL")

    return PresignResponse(**presigned)


@router.post("/{provider}/cors", response_model=CorsResponse)
async def configure_cors(
    provider: str,
    request: CorsRequest,
    service: UploadService = Depends(get_upload_service),
):
    """Apply the direct-upload CORS rules to the provider's bucket."""
    storage_provider = parse_provider(provider)
    try:
        message = await service.configure_cors(storage_provider, request.allowed_origins)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (BotoCoreError, ClientError) as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Error configuring CORS: {e}",
        )

    return CorsResponse(success=True, message=message)
