"""
Upload core for S3-compatible object storage (AWS S3 and OORT Storage).

Files go to the bucket through an orchestrator; credentials, the
real/simulated mode flag and connectivity probes are resolved per provider.
"""
from labsmarket.storage.credentials import CredentialResolver, StorageCredentials, create_credential_resolver
from labsmarket.storage.mode import StorageMode, StorageModeConfig, StorageModeHandle
from labsmarket.storage.orchestrator import AwsUploadOrchestrator, OortUploadOrchestrator, UploadOrchestrator
from labsmarket.storage.prober import ConnectivityProber
from labsmarket.storage.progress import ProgressState, UploadProgress
from labsmarket.storage.results import UploadFailure, UploadResult, UploadSuccess
from labsmarket.storage.validation import FilePayload, ValidationResult, validate_file

__all__ = [
    "CredentialResolver",
    "StorageCredentials",
    "create_credential_resolver",
    "StorageMode",
    "StorageModeConfig",
    "StorageModeHandle",
    "UploadOrchestrator",
    "AwsUploadOrchestrator",
    "OortUploadOrchestrator",
    "ConnectivityProber",
    "ProgressState",
    "UploadProgress",
    "UploadSuccess",
    "UploadFailure",
    "UploadResult",
    "FilePayload",
    "ValidationResult",
    "validate_file",
]
