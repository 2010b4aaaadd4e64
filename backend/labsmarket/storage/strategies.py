"""
Delivery strategies for the AWS upload orchestrator.

Each strategy is one way of getting the bytes into the bucket. The
orchestrator tries them in order and the first success wins:

1. SdkPutStrategy: boto3 put_object with explicit credentials
2. SignedStreamPutStrategy: raw PUT streamed in chunks with hand-built SigV4 headers
3. SignedPutStrategy: raw PUT with the whole body and the same headers

A strategy returns UploadSuccess, returns UploadFailure for a rejected
request, or raises for transport errors. The orchestrator handles both.
"""
import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import httpx

from labsmarket.storage.credentials import StorageCredentials
from labsmarket.storage.errors import TransferError
from labsmarket.storage.progress import UploadProgress
from labsmarket.storage.results import UploadFailure, UploadResult, UploadSuccess
from labsmarket.storage.s3_client import build_s3_client, object_url, sign_request_headers
from labsmarket.storage.validation import FilePayload

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_HTTP_TIMEOUT = 300.0

_XML_MESSAGE = re.compile(r"<Message>(.*?)</Message>", re.DOTALL)
_XML_CODE = re.compile(r"<Code>(.*?)</Code>", re.DOTALL)


def describe_http_error(response: httpx.Response) -> str:
    """
    Human-readable error for a rejected store request.

    Tries a JSON body, then an S3 XML error document, then the status line.
    """
    body = response.text or ""
    try:
        data = json.loads(body)
        if isinstance(data, dict):
            message = data.get("message") or data.get("Message") or data.get("error")
            if message:
                return f"Upload failed with status {response.status_code}: {message}"
    except ValueError:
        pass

    match = _XML_MESSAGE.search(body)
    if match:
        code = _XML_CODE.search(body)
        prefix = f"{code.group(1)}: " if code else ""
        return f"Upload failed with status {response.status_code}: {prefix}{match.group(1)}"

    return f"Upload failed with status {response.status_code} {response.reason_phrase}".rstrip()


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient],
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the injected client, or an owned one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


async def iter_chunks(
    data: bytes,
    progress: Optional[UploadProgress] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """Yield the body in chunks, reporting bytes handed to the transport."""
    total = len(data)
    sent = 0
    for offset in range(0, total, chunk_size):
        chunk = data[offset:offset + chunk_size]
        yield chunk
        sent += len(chunk)
        if progress is not None:
            progress.report_bytes(sent, total)


class UploadStrategy(ABC):
    """One way of delivering a file to the bucket."""

    name: str = "strategy"

    @abstractmethod
    async def attempt(
        self,
        file: FilePayload,
        key: str,
        credentials: StorageCredentials,
        progress: UploadProgress,
    ) -> UploadResult:
        """Deliver `file` under `key`."""


class SdkPutStrategy(UploadStrategy):
    """boto3 put_object, run in a worker thread."""

    name = "sdk_put"

    def __init__(self, acl: Optional[str] = "public-read", client_factory: Callable = build_s3_client):
        self.acl = acl
        self._client_factory = client_factory

    async def attempt(self, file, key, credentials, progress):
        client = self._client_factory(credentials)
        params = {
            "Bucket": credentials.bucket,
            "Key": key,
            "Body": file.data,
            "ContentType": file.upload_content_type,
        }
        if self.acl:
            params["ACL"] = self.acl

        response = await asyncio.to_thread(client.put_object, **params)
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return UploadSuccess(
            url=object_url(credentials, key),
            key=key,
            strategy=self.name,
            status_code=status,
        )


class SignedPutStrategy(UploadStrategy):
    """Raw PUT with the whole body and SigV4 headers."""

    name = "signed_put"

    def __init__(
        self,
        acl: Optional[str] = "public-read",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.acl = acl
        self._http_client = http_client
        self._timeout = timeout

    def _headers(self, file: FilePayload, url: str, credentials: StorageCredentials) -> dict:
        headers = sign_request_headers(
            credentials,
            "PUT",
            url,
            content_type=file.upload_content_type,
            acl=self.acl,
            body=file.data,
        )
        headers["Content-Length"] = str(len(file.data))
        return headers

    def _content(self, file: FilePayload, progress: UploadProgress):
        return file.data

    async def attempt(self, file, key, credentials, progress):
        url = object_url(credentials, key)
        headers = self._headers(file, url, credentials)

        async with http_session(self._http_client, self._timeout) as client:
            response = await client.put(url, content=self._content(file, progress), headers=headers)

        if not response.is_success:
            return UploadFailure(
                error=describe_http_error(response),
                status_code=response.status_code,
                category=TransferError.category,
            )
        return UploadSuccess(url=url, key=key, strategy=self.name, status_code=response.status_code)


class SignedStreamPutStrategy(SignedPutStrategy):
    """Raw PUT streamed in chunks; reports real byte progress."""

    name = "signed_stream_put"

    def __init__(
        self,
        acl: Optional[str] = "public-read",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        super().__init__(acl=acl, http_client=http_client, timeout=timeout)
        self.chunk_size = chunk_size

    def _content(self, file, progress):
        # Content-Length is set explicitly, so httpx does not fall back to chunked encoding
        return iter_chunks(file.data, progress, self.chunk_size)


def default_strategies(
    acl: Optional[str] = "public-read",
    http_client: Optional[httpx.AsyncClient] = None,
    client_factory: Callable = build_s3_client,
):
    """AWS strategy order: SDK, streamed signed PUT, single-body signed PUT."""
    return [
        SdkPutStrategy(acl=acl, client_factory=client_factory),
        SignedStreamPutStrategy(acl=acl, http_client=http_client),
        SignedPutStrategy(acl=acl, http_client=http_client),
    ]
