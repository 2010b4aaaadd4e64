"""
Pydantic schemas for storage endpoints and connectivity probes.
"""
from pydantic import BaseModel, Field
from typing import List, Optional


class ConnectivityDetails(BaseModel):
    """Per-step results of a connectivity probe."""
    credentials_valid: bool = False
    bucket_accessible: bool = False
    write_permission: bool = False
    cors_enabled: Optional[bool] = None
    public_read: Optional[bool] = None
    available_buckets: Optional[List[str]] = None
    error_details: Optional[str] = None
    error_category: Optional[str] = None


class ConnectivityResult(BaseModel):
    """Outcome of a connectivity probe."""
    success: bool
    message: str
    details: ConnectivityDetails = Field(default_factory=ConnectivityDetails)


class ConnectionStatus(BaseModel):
    """Last probe result for a provider. Starts untested."""
    tested: bool = False
    is_valid: bool = False
    details: Optional[ConnectivityDetails] = None
    message: str = "Connection not tested"

    @classmethod
    def from_result(cls, result: ConnectivityResult) -> "ConnectionStatus":
        return cls(
            tested=True,
            is_valid=result.success,
            details=result.details,
            message=result.message,
        )


class CredentialsUpdate(BaseModel):
    """Schema for saving a credentials override."""
    access_key: str = Field(..., min_length=1, description="Access key ID")
    secret_key: str = Field(..., min_length=1, description="Secret access key")
    bucket: str = Field(..., min_length=1, description="Bucket name")
    region: Optional[str] = Field(None, description="Region (AWS)")
    endpoint: Optional[str] = Field(None, description="S3-compatible endpoint URL (OORT)")


class CredentialsResponse(BaseModel):
    """Active credentials with the secret withheld."""
    provider: str
    access_key: str
    bucket: str
    region: Optional[str] = None
    endpoint: Optional[str] = None
    has_secret: bool
    using_custom: bool
    missing_fields: List[str] = []

    @classmethod
    def build(
        cls,
        provider: str,
        credentials,
        using_custom: bool,
        missing_fields: List[str],
    ) -> "CredentialsResponse":
        return cls(
            provider=provider,
            access_key=credentials.masked_access_key,
            bucket=credentials.bucket,
            region=credentials.region,
            endpoint=credentials.endpoint,
            has_secret=bool(credentials.secret_key),
            using_custom=using_custom,
            missing_fields=missing_fields,
        )


class StorageModeResponse(BaseModel):
    """Real vs simulated mode of a provider."""
    provider: str
    use_real: bool


class PresignRequest(BaseModel):
    """Schema for requesting a presigned upload URL."""
    file_name: str = Field(..., min_length=1)
    content_type: str = Field(..., description="MIME type the upload will be sent with")
    path: Optional[str] = Field(None, description="Key prefix (defaults to the provider upload path)")
    expires_in: Optional[int] = Field(None, ge=60, le=7 * 24 * 3600)


class PresignResponse(BaseModel):
    """Presigned PUT URL and the public URL the object will have."""
    upload_url: str
    file_key: str
    public_url: str
    expires_in: int


class CorsRequest(BaseModel):
    """Schema for applying bucket CORS rules."""
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class CorsResponse(BaseModel):
    success: bool
    message: str
