"""
Upload service: the control flow around the upload core.

Flow for upload_file():
1. Validate the file (size, MIME type)
2. Resolve credentials; incomplete sets stop here
3. Real mode: confirm the bucket is reachable
4. Deliver through the provider's orchestrator
5. Record the upload and award points
6. Emit exactly one notification for the terminal stage

Each provider keeps its own credential resolver, mode handle and last
connection status. All three are single slots, last-write-wins.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from labsmarket.config import Settings, settings as default_settings
from labsmarket.models.upload import StorageProvider, Upload
from labsmarket.schemas.storage import ConnectionStatus, ConnectivityResult
from labsmarket.services.notifications import LoggingNotifier, Notifier, notification_for_outcome
from labsmarket.services.outcome import UploadOutcome, UploadStage
from labsmarket.services.points_service import PointsCallback, UploadTracker, calculate_upload_points
from labsmarket.storage.cors import apply_bucket_cors
from labsmarket.storage.credentials import CredentialResolver, StorageCredentials, create_credential_resolver
from labsmarket.storage.errors import ConfigurationError, ConnectivityError, FileValidationError
from labsmarket.storage.kv_store import KeyValueStore, create_kv_store
from labsmarket.storage.mode import StorageMode, StorageModeConfig, StorageModeHandle
from labsmarket.storage.orchestrator import (
    AwsUploadOrchestrator,
    OortUploadOrchestrator,
    UploadOrchestrator,
    build_object_key,
)
from labsmarket.storage.prober import ConnectivityProber
from labsmarket.storage.progress import UploadProgress
from labsmarket.storage.s3_client import build_s3_client, generate_presigned_put_url, object_url
from labsmarket.storage.strategies import default_strategies
from labsmarket.storage.validation import ALLOWED_FILE_TYPES, FilePayload, ValidationResult, validate_file

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[StorageProvider, StorageCredentials, StorageModeHandle], UploadOrchestrator]
ProberFactory = Callable[[StorageProvider, StorageCredentials], ConnectivityProber]

_FAILURE_STAGES = {
    ConfigurationError.category: UploadStage.CONFIGURATION,
    ConnectivityError.category: UploadStage.CONNECTIVITY,
}


@dataclass
class ProviderState:
    resolver: CredentialResolver
    mode: StorageModeHandle
    upload_path: str
    status: ConnectionStatus


class UploadService:
    """
    Facade over validation, credentials, mode, probing, upload and tracking.

    Orchestrators, probers and boto3 clients are built through injectable
    factories so tests can run without network access.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Settings = default_settings,
        tracker: Optional[UploadTracker] = None,
        notifier: Optional[Notifier] = None,
        orchestrator_factory: Optional[OrchestratorFactory] = None,
        prober_factory: Optional[ProberFactory] = None,
        client_factory: Callable = build_s3_client,
    ) -> None:
        self.config = config
        self.store = store
        self.tracker = tracker or UploadTracker()
        self.notifier = notifier or LoggingNotifier()
        self._orchestrator_factory = orchestrator_factory or self._default_orchestrator
        self._prober_factory = prober_factory or self._default_prober
        self._client_factory = client_factory

        upload_paths = {
            StorageProvider.AWS: config.aws_upload_path,
            StorageProvider.OORT: config.oort_upload_path,
        }
        self._providers: Dict[StorageProvider, ProviderState] = {
            provider: ProviderState(
                resolver=create_credential_resolver(provider, store, config),
                mode=StorageMode.initialize(StorageModeConfig(provider), store),
                upload_path=upload_paths[provider],
                status=ConnectionStatus(),
            )
            for provider in StorageProvider
        }

    def _state(self, provider: StorageProvider) -> ProviderState:
        return self._providers[provider]

    # Factories

    def _default_orchestrator(
        self,
        provider: StorageProvider,
        credentials: StorageCredentials,
        mode: StorageModeHandle,
    ) -> UploadOrchestrator:
        common = {
            "progress_interval": self.config.progress_interval_seconds,
            "simulated_delay": self.config.simulated_upload_delay_seconds,
        }
        if provider == StorageProvider.AWS:
            return AwsUploadOrchestrator(
                credentials,
                mode,
                strategies=default_strategies(self.config.object_acl, client_factory=self._client_factory),
                **common,
            )
        return OortUploadOrchestrator(
            credentials,
            mode,
            client_factory=self._client_factory,
            verify=self.config.verify_uploads,
            presign_expiration=self.config.presign_expiration,
            **common,
        )

    def _default_prober(self, provider: StorageProvider, credentials: StorageCredentials) -> ConnectivityProber:
        return ConnectivityProber(
            provider,
            credentials,
            client_factory=self._client_factory,
            timeout=self.config.probe_timeout_seconds,
            probe_acl=self.config.object_acl,
        )

    # Validation

    def validate(self, file: Optional[FilePayload]) -> ValidationResult:
        return validate_file(file, self.config.max_upload_size_bytes, ALLOWED_FILE_TYPES)

    # Credentials

    def get_credentials(self, provider: StorageProvider) -> StorageCredentials:
        return self._state(provider).resolver.get()

    def save_credentials(self, provider: StorageProvider, credentials: StorageCredentials) -> StorageCredentials:
        """Persist an override and return the freshly resolved credentials."""
        state = self._state(provider)
        state.resolver.save(credentials)
        state.status = ConnectionStatus()
        return state.resolver.get()

    def reset_credentials(self, provider: StorageProvider) -> StorageCredentials:
        """Drop the override and return the defaults."""
        state = self._state(provider)
        state.resolver.reset()
        state.status = ConnectionStatus()
        return state.resolver.get()

    def is_using_custom_credentials(self, provider: StorageProvider) -> bool:
        return self._state(provider).resolver.is_using_override()

    def missing_credential_fields(self, provider: StorageProvider) -> List[str]:
        return self._state(provider).resolver.missing_fields()

    # Mode

    def is_real(self, provider: StorageProvider) -> bool:
        return self._state(provider).mode.is_real

    def set_real(self, provider: StorageProvider, use_real: bool) -> bool:
        self._state(provider).mode.set_real(use_real)
        return use_real

    def toggle_mode(self, provider: StorageProvider) -> bool:
        return self._state(provider).mode.toggle_mode()

    # Connectivity

    async def test_connection(self, provider: StorageProvider) -> ConnectivityResult:
        """Run the connectivity probe and replace the provider's connection status."""
        state = self._state(provider)
        prober = self._prober_factory(provider, state.resolver.get())
        result = await prober.test_connection()
        state.status = ConnectionStatus.from_result(result)
        return result

    def connection_status(self, provider: StorageProvider) -> ConnectionStatus:
        return self._state(provider).status

    # Uploads

    def _finish(self, outcome: UploadOutcome) -> UploadOutcome:
        self.notifier.notify(notification_for_outcome(outcome))
        return outcome

    async def upload_file(
        self,
        file: Optional[FilePayload],
        provider: StorageProvider,
        user_id: Optional[str] = None,
        path: Optional[str] = None,
        points_callback: Optional[PointsCallback] = None,
        progress: Optional[UploadProgress] = None,
    ) -> UploadOutcome:
        """
        Validate, upload and track a file.

        Args:
            file: File to upload (None when nothing was selected)
            provider: Target storage provider
            user_id: Contributor to credit; tracking is skipped without one
            path: Key prefix (defaults to the provider upload path)
            points_callback: Called with the awarded points (sync or async)
            progress: Optional progress tracker for this upload

        Returns:
            UploadOutcome whose stage says where the request ended
        """
        state = self._state(provider)
        file_name = file.name if file is not None else ""
        progress = progress or UploadProgress()

        validation = self.validate(file)
        if not validation.valid:
            logger.warning(f"File validation failed: {validation.error}")
            progress.fail()
            return self._finish(UploadOutcome(
                stage=UploadStage.VALIDATION,
                provider=provider,
                file_name=file_name,
                error=validation.error,
            ))

        try:
            credentials = state.resolver.require_complete()
        except ConfigurationError as e:
            progress.fail()
            return self._finish(UploadOutcome(
                stage=UploadStage.CONFIGURATION,
                provider=provider,
                file_name=file_name,
                error=str(e),
            ))

        simulated = not state.mode.is_real
        if not simulated:
            prober = self._prober_factory(provider, credentials)
            try:
                await prober.check_bucket()
            except ConnectivityError as e:
                progress.fail()
                return self._finish(UploadOutcome(
                    stage=UploadStage.CONNECTIVITY,
                    provider=provider,
                    file_name=file_name,
                    error=str(e),
                ))

        orchestrator = self._orchestrator_factory(provider, credentials, state.mode)
        result = await orchestrator.upload(file, path if path is not None else state.upload_path, progress)

        if not result.success:
            return self._finish(UploadOutcome(
                stage=_FAILURE_STAGES.get(result.category, UploadStage.TRANSFER),
                provider=provider,
                file_name=file_name,
                result=result,
                error=result.error,
                simulated=simulated,
                attempts=list(result.attempts),
            ))

        if not user_id:
            return self._finish(UploadOutcome(
                stage=UploadStage.COMPLETE,
                provider=provider,
                file_name=file_name,
                result=result,
                simulated=simulated,
            ))

        record = await self.tracker.track(
            user_id=user_id,
            file_name=file.name,
            file_size=file.size,
            file_type=file.content_type,
            provider=provider,
            upload_url=result.url,
            points_callback=points_callback,
        )
        if record is None:
            return self._finish(UploadOutcome(
                stage=UploadStage.TRACKING,
                provider=provider,
                file_name=file_name,
                result=result,
                error="Upload succeeded but could not be recorded",
                points=calculate_upload_points(file.size, file.content_type, file.name),
                simulated=simulated,
            ))

        return self._finish(UploadOutcome(
            stage=UploadStage.COMPLETE,
            provider=provider,
            file_name=file_name,
            result=result,
            record=record,
            points=record.points_awarded,
            simulated=simulated,
        ))

    # History

    async def history(self, user_id: str, limit: Optional[int] = None) -> List[Upload]:
        return await self.tracker.get_history(user_id, limit)

    async def total_points(self, user_id: str) -> int:
        return await self.tracker.get_total_points(user_id)

    # Presigned uploads and bucket setup

    def presign_upload(
        self,
        provider: StorageProvider,
        file_name: str,
        content_type: str,
        path: Optional[str] = None,
        expires_in: Optional[int] = None,
    ) -> dict:
        """
        Presigned PUT URL for a client-side upload.

        The client must send the same Content-Type that was signed.

        Raises:
            FileValidationError: If the content type is not allowed
            ConfigurationError: If credentials are incomplete
        """
        if content_type not in ALLOWED_FILE_TYPES:
            raise FileValidationError(f"File type {content_type or 'unknown'} is not supported")

        state = self._state(provider)
        credentials = state.resolver.require_complete()
        key = build_object_key(path if path is not None else state.upload_path, file_name)
        expires_in = expires_in or self.config.presign_expiration
        upload_url = generate_presigned_put_url(
            credentials,
            key,
            content_type,
            expiration=expires_in,
            client=self._client_factory(credentials),
        )
        logger.info(
            f"Generated presigned upload URL for {provider.value}",
            extra={"provider": provider.value, "key": key, "expires_in": expires_in}
        )
        return {
            "upload_url": upload_url,
            "file_key": key,
            "public_url": object_url(credentials, key),
            "expires_in": expires_in,
        }

    async def configure_cors(self, provider: StorageProvider, origins: Optional[Sequence[str]] = None) -> str:
        """
        Apply the direct-upload CORS rules to the provider's bucket.

        Raises:
            ConfigurationError: If credentials are incomplete
            botocore.exceptions.ClientError: If the store rejects the rules
        """
        credentials = self._state(provider).resolver.require_complete()
        client = self._client_factory(credentials, timeout=self.config.probe_timeout_seconds)
        return await asyncio.to_thread(apply_bucket_cors, client, credentials.bucket, origins)


def create_upload_service(config: Settings = default_settings, notifier: Optional[Notifier] = None) -> UploadService:
    """Build the service from settings: configured key-value store and optional database."""
    from labsmarket.database import get_session_factory

    store = create_kv_store(config.kv_backend, config.kv_file_path, config.redis_url)
    return UploadService(
        store,
        config,
        tracker=UploadTracker(get_session_factory()),
        notifier=notifier,
    )
