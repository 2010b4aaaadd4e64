"""
S3-compatible client helpers for AWS S3 and OORT Storage.

Uses boto3 with explicit per-call credentials instead of the ambient AWS
credential chain, so a saved override takes effect on the next call.

Addressing:
- AWS: virtual-hosted URLs (https://{bucket}.s3.{region}.amazonaws.com/{key})
- OORT (and any custom endpoint): path-style URLs ({endpoint}/{bucket}/{key})
"""
import logging
from typing import Dict, Optional
from urllib.parse import quote

import boto3
from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.config import Config
from botocore.credentials import Credentials

from labsmarket.storage.credentials import StorageCredentials

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"


def _region(credentials: StorageCredentials) -> str:
    return credentials.region or DEFAULT_REGION


def uses_path_style(credentials: StorageCredentials) -> bool:
    """Custom endpoints are addressed path-style."""
    return bool(credentials.endpoint)


def build_s3_client(
    credentials: StorageCredentials,
    timeout: Optional[float] = None,
    path_style: Optional[bool] = None,
):
    """
    Create a boto3 S3 client for the given credentials.

    Args:
        credentials: Provider credentials (endpoint set for OORT)
        timeout: Connect/read timeout in seconds
        path_style: Force addressing style (defaults to path-style for custom endpoints)

    Returns:
        boto3 S3 client
    """
    if path_style is None:
        path_style = uses_path_style(credentials)

    config_kwargs = {
        "signature_version": "s3v4",
        "s3": {"addressing_style": "path" if path_style else "virtual"},
        # Strategies and probes handle failures themselves
        "retries": {"max_attempts": 1, "mode": "standard"},
    }
    if timeout is not None:
        config_kwargs["connect_timeout"] = timeout
        config_kwargs["read_timeout"] = timeout

    return boto3.client(
        "s3",
        endpoint_url=credentials.endpoint or None,
        aws_access_key_id=credentials.access_key,
        aws_secret_access_key=credentials.secret_key,
        region_name=_region(credentials),
        config=Config(**config_kwargs),
    )


def quote_key(key: str) -> str:
    return quote(key, safe="/~")


def bucket_url(credentials: StorageCredentials) -> str:
    """Base URL of the bucket, without trailing slash."""
    if credentials.endpoint:
        return f"{credentials.endpoint.rstrip('/')}/{credentials.bucket}"
    return f"https://{credentials.bucket}.s3.{_region(credentials)}.amazonaws.com"


def object_url(credentials: StorageCredentials, key: str) -> str:
    """Public URL of an object."""
    return f"{bucket_url(credentials)}/{quote_key(key)}"


def generate_presigned_put_url(
    credentials: StorageCredentials,
    key: str,
    content_type: str,
    expiration: int = 3600,
    client=None,
) -> str:
    """
    Generate a presigned PUT URL for direct upload.

    Content-Type is part of the signature, so the uploader must send the
    same value. No ACL is signed; buckets with ACLs disabled reject it.

    Raises:
        botocore.exceptions.ClientError: If signing fails
    """
    client = client or build_s3_client(credentials)
    url = client.generate_presigned_url(
        ClientMethod="put_object",
        Params={
            "Bucket": credentials.bucket,
            "Key": key,
            "ContentType": content_type,
        },
        ExpiresIn=expiration,
    )
    logger.debug(f"Generated presigned upload URL for {key}")
    return url


def sign_request_headers(
    credentials: StorageCredentials,
    method: str,
    url: str,
    content_type: Optional[str] = None,
    acl: Optional[str] = None,
    body: Optional[bytes] = None,
) -> Dict[str, str]:
    """
    Build SigV4 headers for a raw HTTP request against the store.

    Over https the payload is sent as UNSIGNED-PAYLOAD so streamed bodies
    are not hashed up front; plain http endpoints sign the body hash.
    S3SigV4Auth reads that choice from the s3 section of the client config.

    Returns:
        Headers including Authorization, X-Amz-Date and x-amz-content-sha256
    """
    headers = {}
    if content_type:
        headers["Content-Type"] = content_type
    if acl:
        headers["x-amz-acl"] = acl

    request = AWSRequest(method=method, url=url, data=body, headers=headers)
    if url.startswith("https"):
        request.context["client_config"] = Config(s3={"payload_signing_enabled": False})
    signer = S3SigV4Auth(
        Credentials(credentials.access_key, credentials.secret_key),
        "s3",
        _region(credentials),
    )
    signer.add_auth(request)
    return dict(request.headers.items())
