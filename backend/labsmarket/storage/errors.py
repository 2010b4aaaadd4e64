"""
Error taxonomy for the upload core.

Validation and configuration errors short-circuit before any network
call. Connectivity and transfer errors are converted to UploadFailure at
the orchestrator boundary. Tracking errors never invalidate an upload.
"""
import asyncio
import enum
from typing import List, Optional, Sequence

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
    EndpointConnectionError,
    ConnectionClosedError,
)
import httpx


class StorageError(Exception):
    """Base class for upload core errors."""
    category = "storage"


class FileValidationError(StorageError):
    """File missing, oversized or of a disallowed type."""
    category = "validation"


class ConfigurationError(StorageError):
    """Credentials, bucket or endpoint missing."""
    category = "configuration"

    def __init__(self, message: str, missing_fields: Sequence[str] = ()):
        super().__init__(message)
        self.missing_fields = list(missing_fields)


class ConnectivityErrorCategory(str, enum.Enum):
    """Reason a storage endpoint could not be used."""
    INVALID_ACCESS_KEY = "invalid_access_key"
    INVALID_SECRET = "invalid_secret"
    BUCKET_UNAVAILABLE = "bucket_unavailable"
    NETWORK = "network"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ConnectivityError(StorageError):
    """Remote store unreachable or refusing the credentials/bucket."""
    category = "connectivity"

    def __init__(
        self,
        message: str,
        reason: ConnectivityErrorCategory = ConnectivityErrorCategory.UNKNOWN,
        available_buckets: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.available_buckets = available_buckets or []


class TransferError(StorageError):
    """Every delivery strategy failed."""
    category = "transfer"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TrackingError(StorageError):
    """Upload succeeded but recording it or awarding points failed."""
    category = "tracking"


# S3 error codes
_BUCKET_UNAVAILABLE_CODES = {"404", "403", "NoSuchBucket", "NotFound", "Forbidden", "AccessDenied"}


def client_error_code(error: ClientError) -> str:
    """Extract the S3 error code from a botocore ClientError."""
    return str(error.response.get("Error", {}).get("Code", ""))


def client_error_status(error: ClientError) -> Optional[int]:
    """Extract the HTTP status code from a botocore ClientError."""
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def is_bucket_unavailable(error: ClientError) -> bool:
    """Not-found and forbidden are reported the same way to callers."""
    return (
        client_error_code(error) in _BUCKET_UNAVAILABLE_CODES
        or client_error_status(error) in (403, 404)
    )


def classify_connectivity_error(error: BaseException) -> ConnectivityErrorCategory:
    """
    Map a low-level exception to a connectivity category.

    Timeouts are checked first so they are never reported as
    invalid credentials.
    """
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectTimeoutError,
                          ReadTimeoutError, httpx.TimeoutException)):
        return ConnectivityErrorCategory.TIMEOUT

    if isinstance(error, ClientError):
        code = client_error_code(error)
        if code == "InvalidAccessKeyId":
            return ConnectivityErrorCategory.INVALID_ACCESS_KEY
        if code == "SignatureDoesNotMatch":
            return ConnectivityErrorCategory.INVALID_SECRET
        if is_bucket_unavailable(error):
            return ConnectivityErrorCategory.BUCKET_UNAVAILABLE
        return ConnectivityErrorCategory.UNKNOWN

    if isinstance(error, (EndpointConnectionError, ConnectionClosedError,
                          httpx.TransportError, ConnectionError, OSError)):
        return ConnectivityErrorCategory.NETWORK

    return ConnectivityErrorCategory.UNKNOWN
