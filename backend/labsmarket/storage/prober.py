"""
Connectivity prober for S3-compatible providers.

Steps run strictly in order; a failed step short-circuits the rest:
1. Credentials present (no network otherwise)
2. ListBuckets: are the credentials accepted?
3. HeadBucket on the configured bucket: does it exist and is it reachable?
4. PUT a small probe object: can we write?
5. Follow-ups that never change the outcome: bucket CORS rules and
   unauthenticated read of the probe object

Every remote call is bounded by the probe timeout.
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional

import httpx
from botocore.exceptions import ClientError

from labsmarket.models.upload import StorageProvider
from labsmarket.schemas.storage import ConnectivityDetails, ConnectivityResult
from labsmarket.storage.credentials import StorageCredentials
from labsmarket.storage.errors import (
    ConfigurationError,
    ConnectivityError,
    ConnectivityErrorCategory,
    classify_connectivity_error,
    client_error_code,
    is_bucket_unavailable,
)
from labsmarket.storage.s3_client import build_s3_client, object_url
from labsmarket.utils.logging import log_connectivity_probe
from labsmarket.utils.metrics import connectivity_probes_total

logger = logging.getLogger(__name__)

PROBE_CONTENT = b"LabsMarket connectivity test"


def probe_object_key(now_ms: Optional[int] = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"test/connectivity-{now_ms}.txt"


class ConnectivityProber:
    """
    Runs the connectivity probe for one provider's credentials.

    The boto3 client is created lazily through `client_factory`, so tests
    can inject a mock client.
    """

    def __init__(
        self,
        provider: StorageProvider,
        credentials: StorageCredentials,
        client_factory: Callable = build_s3_client,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        probe_acl: Optional[str] = "public-read",
        check_cors: bool = True,
        check_public_read: bool = True,
    ) -> None:
        self.provider = provider
        self.credentials = credentials
        self.timeout = timeout
        self.probe_acl = probe_acl
        self.check_cors = check_cors
        self.check_public_read = check_public_read
        self._client_factory = client_factory
        self._http_client = http_client
        self._client = None

    @property
    def label(self) -> str:
        return "AWS" if self.provider == StorageProvider.AWS else "OORT"

    @property
    def client(self):
        if self._client is None:
            self._client = self._client_factory(self.credentials, timeout=self.timeout)
        return self._client

    async def _call(self, method_name: str, **kwargs):
        """Run a blocking boto3 call in a thread, bounded by the probe timeout."""
        method = getattr(self.client, method_name)
        return await asyncio.wait_for(asyncio.to_thread(method, **kwargs), timeout=self.timeout)

    async def list_buckets(self) -> List[str]:
        """
        Names of the buckets visible to the credentials.

        Raises:
            ConnectivityError: If the credentials are rejected or the store is unreachable
        """
        try:
            response = await self._call("list_buckets")
        except Exception as e:
            reason = classify_connectivity_error(e)
            raise ConnectivityError(self._credential_failure_message(reason, e), reason=reason) from e
        return [bucket["Name"] for bucket in response.get("Buckets", []) if "Name" in bucket]

    async def check_bucket(self, available_buckets: Optional[List[str]] = None) -> None:
        """
        Confirm the configured bucket exists and is reachable.

        Not-found and forbidden are both reported as BUCKET_UNAVAILABLE.

        Raises:
            ConnectivityError: If the bucket cannot be used
        """
        bucket = self.credentials.bucket
        try:
            await self._call("head_bucket", Bucket=bucket)
        except ClientError as e:
            if is_bucket_unavailable(e):
                message = f"Bucket '{bucket}' does not exist or you don't have access to it."
                if available_buckets:
                    message += f" Available buckets: {', '.join(available_buckets)}"
                raise ConnectivityError(
                    message,
                    reason=ConnectivityErrorCategory.BUCKET_UNAVAILABLE,
                    available_buckets=available_buckets,
                ) from e
            raise ConnectivityError(
                f"Error checking bucket '{bucket}': {client_error_code(e)}",
                reason=classify_connectivity_error(e),
                available_buckets=available_buckets,
            ) from e
        except Exception as e:
            reason = classify_connectivity_error(e)
            raise ConnectivityError(
                f"Error checking bucket '{bucket}': {self._describe(reason, e)}",
                reason=reason,
                available_buckets=available_buckets,
            ) from e

    async def _write_probe(self, key: str) -> None:
        params = {
            "Bucket": self.credentials.bucket,
            "Key": key,
            "Body": PROBE_CONTENT,
            "ContentType": "text/plain",
        }
        if self.probe_acl:
            params["ACL"] = self.probe_acl
        await self._call("put_object", **params)

    async def _read_cors(self) -> Optional[bool]:
        """True/False when the bucket CORS rules could be read, None otherwise."""
        try:
            response = await self._call("get_bucket_cors", Bucket=self.credentials.bucket)
        except ClientError as e:
            if client_error_code(e) == "NoSuchCORSConfiguration":
                return False
            logger.info(f"Could not read CORS configuration: {client_error_code(e)}")
            return None
        except Exception as e:
            logger.info(f"Could not read CORS configuration: {e}")
            return None
        return bool(response.get("CORSRules"))

    async def _check_public_read(self, key: str) -> Optional[bool]:
        url = object_url(self.credentials, key)
        try:
            if self._http_client is not None:
                response = await asyncio.wait_for(self._http_client.head(url), timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.head(url)
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.info(f"Could not check public read access: {e}")
            return None
        return response.is_success

    def _describe(self, reason: ConnectivityErrorCategory, error: BaseException) -> str:
        if reason == ConnectivityErrorCategory.TIMEOUT:
            return f"Request timed out after {self.timeout:g}s"
        if reason == ConnectivityErrorCategory.NETWORK:
            return f"Network error: {error}. This may be caused by CORS restrictions or connectivity issues."
        return str(error)

    def _credential_failure_message(self, reason: ConnectivityErrorCategory, error: BaseException) -> str:
        if reason == ConnectivityErrorCategory.INVALID_ACCESS_KEY:
            return f"Invalid {self.label} Access Key ID. Please check your credentials."
        if reason == ConnectivityErrorCategory.INVALID_SECRET:
            return f"Invalid {self.label} Secret Access Key. Please check your credentials."
        if reason == ConnectivityErrorCategory.TIMEOUT:
            return f"Connection to {self.label} timed out. Check your network connection and endpoint."
        if reason == ConnectivityErrorCategory.NETWORK:
            return (
                f"Network error connecting to {self.label}. "
                "This may be caused by CORS restrictions or connectivity issues."
            )
        return f"Failed to connect to {self.label}: {error}"

    def _finish(self, result: ConnectivityResult, start_time: float) -> ConnectivityResult:
        connectivity_probes_total.labels(
            provider=self.provider.value,
            result="success" if result.success else (result.details.error_category or "failure"),
        ).inc()
        log_connectivity_probe(
            logger,
            provider=self.provider.value,
            success=result.success,
            message=result.message,
            duration_ms=(time.time() - start_time) * 1000,
            error_category=result.details.error_category,
        )
        return result

    def _failure(
        self,
        message: str,
        details: ConnectivityDetails,
        reason: ConnectivityErrorCategory,
        cause: Optional[BaseException],
    ) -> ConnectivityResult:
        details.error_details = (str(cause) if cause is not None else "") or message
        details.error_category = reason.value
        return ConnectivityResult(success=False, message=message, details=details)

    async def test_connection(self) -> ConnectivityResult:
        """
        Run the full probe.

        Returns:
            ConnectivityResult; success means the probe object was written
        """
        start_time = time.time()
        details = ConnectivityDetails()

        if not self.credentials.access_key or not self.credentials.secret_key:
            details.error_category = ConfigurationError.category
            return self._finish(
                ConnectivityResult(
                    success=False,
                    message=f"{self.label} credentials not configured. Please set up your credentials first.",
                    details=details,
                ),
                start_time,
            )

        try:
            buckets = await self.list_buckets()
        except ConnectivityError as e:
            return self._finish(self._failure(str(e), details, e.reason, e.__cause__), start_time)

        details.credentials_valid = True
        details.available_buckets = buckets

        if not self.credentials.bucket:
            details.error_category = ConfigurationError.category
            listing = ", ".join(buckets) if buckets else "none"
            return self._finish(
                ConnectivityResult(
                    success=False,
                    message=f"Credentials are valid but no bucket is configured. Available buckets: {listing}",
                    details=details,
                ),
                start_time,
            )

        try:
            await self.check_bucket(available_buckets=buckets)
        except ConnectivityError as e:
            return self._finish(self._failure(str(e), details, e.reason, e.__cause__), start_time)

        details.bucket_accessible = True

        key = probe_object_key()
        try:
            await self._write_probe(key)
        except Exception as e:
            reason = classify_connectivity_error(e)
            return self._finish(
                self._failure(
                    f"Bucket '{self.credentials.bucket}' is accessible but the write test failed: "
                    f"{self._describe(reason, e)}",
                    details,
                    reason,
                    e,
                ),
                start_time,
            )

        details.write_permission = True

        if self.check_cors:
            details.cors_enabled = await self._read_cors()
        if self.check_public_read:
            details.public_read = await self._check_public_read(key)

        return self._finish(
            ConnectivityResult(
                success=True,
                message=f"Successfully connected to {self.label} bucket '{self.credentials.bucket}' with write access.",
                details=details,
            ),
            start_time,
        )
