"""
Tests for the connectivity prober.
boto3 is replaced by a MagicMock client; the public-read check uses httpx.MockTransport.
"""
import time
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError

from labsmarket.models.upload import StorageProvider
from labsmarket.storage.credentials import StorageCredentials
from labsmarket.storage.errors import ConnectivityError, ConnectivityErrorCategory
from labsmarket.storage.prober import ConnectivityProber, probe_object_key


AWS = StorageCredentials("AKIAEXAMPLEKEY", "aws-secret", "labs-aws", region="us-east-1")


def client_error(code: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


def healthy_client() -> MagicMock:
    client = MagicMock()
    client.list_buckets.return_value = {"Buckets": [{"Name": "labs-aws"}, {"Name": "archive"}]}
    client.head_bucket.return_value = {}
    client.put_object.return_value = {}
    client.get_bucket_cors.return_value = {"CORSRules": [{"AllowedMethods": ["PUT"]}]}
    return client


def make_prober(client, credentials=AWS, http_status=200, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(http_status)))
    return ConnectivityProber(
        StorageProvider.AWS,
        credentials,
        client_factory=lambda credentials, **kw: client,
        http_client=http_client,
        **kwargs,
    )


class TestConnectivityProber:
    """Tests for ConnectivityProber.test_connection."""

    def test_probe_object_key(self):
        assert probe_object_key(1718000000000) == "test/connectivity-1718000000000.txt"

    @pytest.mark.asyncio
    async def test_success(self):
        client = healthy_client()

        result = await make_prober(client).test_connection()

        assert result.success is True
        assert result.message == "Successfully connected to AWS bucket 'labs-aws' with write access."
        details = result.details
        assert details.credentials_valid is True
        assert details.bucket_accessible is True
        assert details.write_permission is True
        assert details.cors_enabled is True
        assert details.public_read is True
        assert details.available_buckets == ["labs-aws", "archive"]

        put_kwargs = client.put_object.call_args.kwargs
        assert put_kwargs["Bucket"] == "labs-aws"
        assert put_kwargs["Key"].startswith("test/connectivity-")
        assert put_kwargs["ACL"] == "public-read"

    @pytest.mark.asyncio
    async def test_missing_keys_skip_network(self):
        factory = MagicMock()
        prober = ConnectivityProber(
            StorageProvider.AWS,
            StorageCredentials("", "", "labs-aws"),
            client_factory=factory,
        )

        result = await prober.test_connection()

        assert result.success is False
        assert result.details.error_category == "configuration"
        assert "credentials not configured" in result.message
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_access_key(self):
        client = healthy_client()
        client.list_buckets.side_effect = client_error("InvalidAccessKeyId", 403, "ListBuckets")

        result = await make_prober(client).test_connection()

        assert result.success is False
        assert result.message == "Invalid AWS Access Key ID. Please check your credentials."
        assert result.details.error_category == ConnectivityErrorCategory.INVALID_ACCESS_KEY.value
        assert result.details.credentials_valid is False
        client.head_bucket.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_secret(self):
        client = healthy_client()
        client.list_buckets.side_effect = client_error("SignatureDoesNotMatch", 403, "ListBuckets")

        result = await make_prober(client).test_connection()

        assert result.success is False
        assert result.details.error_category == "invalid_secret"
        assert "Secret Access Key" in result.message
        assert result.details.credentials_valid is False
        client.head_bucket.assert_not_called()
        client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_bucket_missing(self):
        client = healthy_client()
        client.head_bucket.side_effect = client_error("404", 404, "HeadBucket")

        result = await make_prober(client).test_connection()

        assert result.success is False
        assert result.details.credentials_valid is True
        assert result.details.bucket_accessible is False
        assert result.details.error_category == "bucket_unavailable"
        assert result.message == (
            "Bucket 'labs-aws' does not exist or you don't have access to it. "
            "Available buckets: labs-aws, archive"
        )
        client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_forbidden_reported_as_unavailable(self):
        client = healthy_client()
        client.head_bucket.side_effect = client_error("403", 403, "HeadBucket")

        result = await make_prober(client).test_connection()

        assert result.details.error_category == "bucket_unavailable"

    @pytest.mark.asyncio
    async def test_write_denied(self):
        client = healthy_client()
        client.put_object.side_effect = client_error("AccessDenied", 403, "PutObject")

        result = await make_prober(client).test_connection()

        assert result.success is False
        assert result.details.bucket_accessible is True
        assert result.details.write_permission is False
        assert result.message.startswith("Bucket 'labs-aws' is accessible but the write test failed")
        client.get_bucket_cors.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_cors_does_not_fail_probe(self):
        client = healthy_client()
        client.get_bucket_cors.side_effect = client_error("NoSuchCORSConfiguration", 404, "GetBucketCors")

        result = await make_prober(client, http_status=403).test_connection()

        assert result.success is True
        assert result.details.cors_enabled is False
        assert result.details.public_read is False

    @pytest.mark.asyncio
    async def test_unreadable_cors_is_unknown(self):
        client = healthy_client()
        client.get_bucket_cors.side_effect = client_error("AccessDenied", 403, "GetBucketCors")

        result = await make_prober(client).test_connection()

        assert result.success is True
        assert result.details.cors_enabled is None

    @pytest.mark.asyncio
    async def test_no_bucket_configured_lists_buckets(self):
        client = healthy_client()
        credentials = StorageCredentials("AKIAEXAMPLEKEY", "aws-secret", "")

        result = await make_prober(client, credentials=credentials).test_connection()

        assert result.success is False
        assert result.details.credentials_valid is True
        assert result.details.available_buckets == ["labs-aws", "archive"]
        assert "Available buckets: labs-aws, archive" in result.message
        client.head_bucket.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = healthy_client()
        client.list_buckets.side_effect = lambda: time.sleep(0.3)

        result = await make_prober(client, timeout=0.05).test_connection()

        assert result.success is False
        assert result.details.error_category == "timeout"
        assert "timed out" in result.message

    @pytest.mark.asyncio
    async def test_follow_ups_can_be_disabled(self):
        client = healthy_client()

        result = await make_prober(client, check_cors=False, check_public_read=False).test_connection()

        assert result.success is True
        assert result.details.cors_enabled is None
        assert result.details.public_read is None
        client.get_bucket_cors.assert_not_called()


class TestCheckBucket:
    """Tests for the standalone bucket check used before uploads."""

    @pytest.mark.asyncio
    async def test_reachable(self):
        client = healthy_client()
        await make_prober(client).check_bucket()
        client.head_bucket.assert_called_once_with(Bucket="labs-aws")

    @pytest.mark.asyncio
    async def test_unavailable(self):
        client = healthy_client()
        client.head_bucket.side_effect = client_error("NoSuchBucket", 404, "HeadBucket")

        with pytest.raises(ConnectivityError) as exc_info:
            await make_prober(client).check_bucket()

        assert exc_info.value.reason == ConnectivityErrorCategory.BUCKET_UNAVAILABLE
