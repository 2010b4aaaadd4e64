"""
Upload orchestrators for AWS S3 and OORT Storage.

Flow (both providers):
1. Reject incomplete credentials without any I/O
2. Build the object key and start progress at 5%
3. Simulated mode: wait briefly and return a realistic URL, no network
4. Real mode: deliver the bytes (strategy chain for AWS, presigned PUT for OORT)
5. Progress goes to 100 on success, back to 0 on failure

upload() always returns an UploadResult; exceptions never escape.
"""
import asyncio
import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from labsmarket.models.upload import StorageProvider
from labsmarket.storage.credentials import StorageCredentials
from labsmarket.storage.errors import (
    ConfigurationError,
    ConnectivityError,
    ConnectivityErrorCategory,
    TransferError,
    classify_connectivity_error,
    client_error_code,
    client_error_status,
)
from labsmarket.storage.mode import StorageModeHandle
from labsmarket.storage.progress import EstimatedProgress, UploadProgress
from labsmarket.storage.results import UploadFailure, UploadResult, UploadSuccess
from labsmarket.storage.s3_client import build_s3_client, generate_presigned_put_url, object_url
from labsmarket.storage.strategies import (
    UploadStrategy,
    default_strategies,
    describe_http_error,
    http_session,
    iter_chunks,
)
from labsmarket.storage.validation import FilePayload
from labsmarket.utils.logging import (
    log_strategy_failed,
    log_upload_completed,
    log_upload_failed,
    log_upload_started,
)
from labsmarket.utils.metrics import (
    upload_bytes_total,
    upload_duration_seconds,
    upload_strategy_failures_total,
    uploads_total,
)

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

STRATEGY_HINT = "This is likely caused by CORS restrictions or invalid credentials."


def normalize_path(path: Optional[str]) -> str:
    """Empty stays empty; anything else ends with a slash."""
    if not path:
        return ""
    return path if path.endswith("/") else f"{path}/"


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("_", name)


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_object_key(
    path: Optional[str],
    file_name: str,
    now_ms: Optional[int] = None,
    short_id: Optional[str] = None,
) -> str:
    """
    Collision-resistant key: {path}{epochMillis}-{8 hex chars}-{sanitized name}.
    """
    now_ms = now_ms if now_ms is not None else _now_ms()
    short_id = short_id or uuid.uuid4().hex[:8]
    return f"{normalize_path(path)}{now_ms}-{short_id}-{sanitize_file_name(file_name)}"


def build_direct_key(path: Optional[str], file_name: str, now_ms: Optional[int] = None) -> str:
    """Key that keeps the original name: {path}{epochMillis}-{name}."""
    now_ms = now_ms if now_ms is not None else _now_ms()
    return f"{normalize_path(path)}{now_ms}-{file_name}"


def describe_exception(error: BaseException, provider: StorageProvider) -> str:
    """User-facing message for a failed store call."""
    category = classify_connectivity_error(error)
    label = "AWS" if provider == StorageProvider.AWS else "OORT"

    if category == ConnectivityErrorCategory.INVALID_ACCESS_KEY:
        return f"Invalid {label} Access Key ID. Please check your credentials."
    if category == ConnectivityErrorCategory.INVALID_SECRET:
        return f"Invalid {label} Secret Access Key. Please check your credentials."
    if category == ConnectivityErrorCategory.TIMEOUT:
        return "Upload timed out. Check your internet connection and try again."
    if category == ConnectivityErrorCategory.NETWORK:
        return f"Network error during upload: {error}. Check your internet connection and try again."
    if isinstance(error, ClientError):
        return f"{label} upload failed: {client_error_code(error)} - {error}"
    return f"{label} upload failed: {error}"


def failure_from_exception(error: BaseException, provider: StorageProvider) -> UploadFailure:
    status_code = client_error_status(error) if isinstance(error, ClientError) else None
    if classify_connectivity_error(error) == ConnectivityErrorCategory.UNKNOWN:
        category = TransferError.category
    else:
        category = ConnectivityError.category
    return UploadFailure(
        error=describe_exception(error, provider),
        status_code=status_code,
        category=category,
    )


class UploadOrchestrator(ABC):
    """Common upload flow. Subclasses provide the key layout and the delivery."""

    provider: StorageProvider
    require_endpoint = False
    default_interval = 0.3
    default_max_step = 5.0

    def __init__(
        self,
        credentials: StorageCredentials,
        mode: StorageModeHandle,
        progress_interval: Optional[float] = None,
        simulated_delay: float = 1.5,
    ) -> None:
        self.credentials = credentials
        self.mode = mode
        self.progress_interval = progress_interval if progress_interval is not None else self.default_interval
        self.simulated_delay = simulated_delay

    @abstractmethod
    def build_key(self, file_name: str, path: Optional[str]) -> str:
        """Object key for a new upload."""

    @abstractmethod
    async def _deliver(self, file: FilePayload, key: str, progress: UploadProgress) -> UploadResult:
        """Put the bytes into the bucket."""

    def _estimator(self, progress: UploadProgress) -> EstimatedProgress:
        return EstimatedProgress(progress, interval=self.progress_interval, max_step=self.default_max_step)

    async def _simulate(self, file: FilePayload, key: str, progress: UploadProgress) -> UploadResult:
        async with self._estimator(progress):
            await asyncio.sleep(self.simulated_delay)
        return UploadSuccess(url=object_url(self.credentials, key), key=key, strategy="simulated")

    async def upload(
        self,
        file: FilePayload,
        path: Optional[str] = None,
        progress: Optional[UploadProgress] = None,
    ) -> UploadResult:
        """
        Upload a file and normalize the outcome.

        Args:
            file: Validated file payload
            path: Key prefix (a trailing slash is added when missing)
            progress: Optional progress tracker owned by this upload

        Returns:
            UploadSuccess or UploadFailure
        """
        progress = progress or UploadProgress()
        provider = self.provider.value

        missing = self.credentials.missing_fields(require_endpoint=self.require_endpoint)
        if missing:
            result = UploadFailure(
                error=(
                    f"{provider} credentials not configured (missing: {', '.join(missing)}). "
                    "Please set up your credentials first."
                ),
                category=ConfigurationError.category,
            )
            progress.fail()
            log_upload_failed(logger, provider=provider, error=result.error, category=result.category)
            uploads_total.labels(provider=provider, outcome="failure").inc()
            return result

        key = self.build_key(file.name, path)
        simulated = not self.mode.is_real
        start_time = time.time()
        progress.start()
        log_upload_started(logger, provider=provider, key=key, file_size=file.size, simulated=simulated)

        try:
            if simulated:
                result = await self._simulate(file, key, progress)
            else:
                async with self._estimator(progress):
                    result = await self._deliver(file, key, progress)
        except Exception as e:
            result = failure_from_exception(e, self.provider)

        duration = time.time() - start_time
        if result.success:
            progress.succeed()
            outcome = "simulated" if simulated else "success"
            if not simulated:
                upload_bytes_total.labels(provider=provider).inc(file.size)
            log_upload_completed(
                logger,
                provider=provider,
                key=key,
                duration_ms=duration * 1000,
                strategy=result.strategy,
                verified=result.verified,
            )
        else:
            progress.fail()
            outcome = "failure"
            log_upload_failed(
                logger,
                provider=provider,
                key=key,
                error=result.error,
                duration_ms=duration * 1000,
                category=result.category,
            )

        uploads_total.labels(provider=provider, outcome=outcome).inc()
        upload_duration_seconds.labels(provider=provider, outcome=outcome).observe(duration)
        return result


class AwsUploadOrchestrator(UploadOrchestrator):
    """
    AWS S3 upload through an ordered list of delivery strategies.

    The first strategy that succeeds wins; earlier failures are logged and
    recorded in the final failure's `attempts` only if every strategy fails.
    """

    provider = StorageProvider.AWS

    def __init__(
        self,
        credentials: StorageCredentials,
        mode: StorageModeHandle,
        strategies: Optional[Sequence[UploadStrategy]] = None,
        acl: Optional[str] = "public-read",
        **kwargs,
    ) -> None:
        super().__init__(credentials, mode, **kwargs)
        self.strategies: List[UploadStrategy] = list(strategies) if strategies is not None else default_strategies(acl)

    def build_key(self, file_name, path):
        return build_object_key(path, file_name)

    async def _deliver(self, file, key, progress):
        attempts = []
        last_failure: Optional[UploadFailure] = None

        for strategy in self.strategies:
            try:
                result = await strategy.attempt(file, key, self.credentials, progress)
            except Exception as e:
                result = failure_from_exception(e, self.provider)

            if result.success:
                return result

            attempts.append(f"{strategy.name}: {result.error}")
            last_failure = result
            progress.release_real_signal()
            log_strategy_failed(logger, provider=self.provider.value, strategy=strategy.name, error=result.error, key=key)
            upload_strategy_failures_total.labels(provider=self.provider.value, strategy=strategy.name).inc()

        last_error = last_failure.error if last_failure else "no upload strategies configured"
        return UploadFailure(
            error=f"All upload strategies failed. Last error: {last_error}. {STRATEGY_HINT}",
            status_code=last_failure.status_code if last_failure else None,
            category=TransferError.category,
            attempts=tuple(attempts),
        )


class OortUploadOrchestrator(UploadOrchestrator):
    """
    OORT Storage upload through a single presigned PUT.

    After a successful PUT the public URL is optionally re-checked with an
    unauthenticated HEAD; the result only sets `verified`.
    """

    provider = StorageProvider.OORT
    require_endpoint = True
    default_interval = 0.5
    default_max_step = 10.0

    def __init__(
        self,
        credentials: StorageCredentials,
        mode: StorageModeHandle,
        http_client: Optional[httpx.AsyncClient] = None,
        client_factory: Callable = build_s3_client,
        verify: bool = True,
        presign_expiration: int = 3600,
        **kwargs,
    ) -> None:
        super().__init__(credentials, mode, **kwargs)
        self._http_client = http_client
        self._client_factory = client_factory
        self.verify = verify
        self.presign_expiration = presign_expiration

    def build_key(self, file_name, path):
        return build_direct_key(path, file_name)

    async def _verify_access(self, client: httpx.AsyncClient, url: str) -> bool:
        try:
            response = await client.head(url)
        except httpx.HTTPError as e:
            logger.warning(f"Could not verify uploaded file at {url}: {e}")
            return False
        if not response.is_success:
            logger.warning(f"Uploaded file not publicly accessible yet: {url} ({response.status_code})")
        return response.is_success

    async def _deliver(self, file, key, progress):
        content_type = file.upload_content_type
        try:
            upload_url = generate_presigned_put_url(
                self.credentials,
                key,
                content_type,
                expiration=self.presign_expiration,
                client=self._client_factory(self.credentials),
            )
        except (BotoCoreError, ClientError) as e:
            return UploadFailure(error=f"Failed to generate upload URL: {e}", category=ConfigurationError.category)

        public_url = object_url(self.credentials, key)
        headers = {"Content-Type": content_type, "Content-Length": str(len(file.data))}

        async with http_session(self._http_client) as client:
            response = await client.put(upload_url, content=iter_chunks(file.data, progress), headers=headers)
            if not response.is_success:
                return UploadFailure(
                    error=describe_http_error(response),
                    status_code=response.status_code,
                    category=TransferError.category,
                )

            verified = None
            if self.verify:
                progress.verifying()
                verified = await self._verify_access(client, public_url)

        return UploadSuccess(
            url=public_url,
            key=key,
            verified=verified,
            strategy="presigned_put",
            status_code=response.status_code,
        )
