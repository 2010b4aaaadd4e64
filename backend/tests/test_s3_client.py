"""
Tests for S3 client helpers, error classification and bucket CORS rules.
"""
import asyncio
import hashlib
from unittest.mock import MagicMock

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from labsmarket.storage.cors import apply_bucket_cors, build_cors_configuration
from labsmarket.storage.credentials import StorageCredentials
from labsmarket.storage.errors import (
    ConnectivityErrorCategory,
    classify_connectivity_error,
    is_bucket_unavailable,
)
from labsmarket.storage.s3_client import (
    bucket_url,
    generate_presigned_put_url,
    object_url,
    sign_request_headers,
)
from labsmarket.storage.strategies import describe_http_error


AWS = StorageCredentials("AKIAEXAMPLEKEY", "aws-secret", "labs-aws", region="eu-central-1")
OORT = StorageCredentials(
    "OORTEXAMPLEKEY", "oort-secret", "labs-oort",
    region="us-east-1", endpoint="https://s3-standard.oortech.com/",
)


def client_error(code: str, status: int = 400, operation: str = "HeadBucket") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class TestUrls:
    """Tests for bucket and object URLs."""

    def test_aws_virtual_hosted_url(self):
        assert bucket_url(AWS) == "https://labs-aws.s3.eu-central-1.amazonaws.com"

    def test_aws_region_defaults(self):
        credentials = StorageCredentials("a", "s", "b")
        assert bucket_url(credentials) == "https://b.s3.us-east-1.amazonaws.com"

    def test_oort_path_style_url(self):
        assert object_url(OORT, "uploads/1-data.csv") == (
            "https://s3-standard.oortech.com/labs-oort/uploads/1-data.csv"
        )

    def test_object_key_is_quoted(self):
        assert object_url(AWS, "uploads/my file.csv").endswith("/uploads/my%20file.csv")


class TestSigning:
    """Tests for request signing and presigned URLs."""

    def test_signed_headers(self):
        headers = sign_request_headers(
            AWS,
            "PUT",
            object_url(AWS, "uploads/a.csv"),
            content_type="text/csv",
            acl="public-read",
            body=b"a,b",
        )
        lowered = {k.lower(): v for k, v in headers.items()}

        assert lowered["authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIAEXAMPLEKEY/")
        assert "/eu-central-1/s3/aws4_request" in lowered["authorization"]
        assert "x-amz-acl" in lowered["authorization"]
        assert lowered["content-type"] == "text/csv"
        assert lowered["x-amz-acl"] == "public-read"
        assert "x-amz-date" in lowered
        assert "x-amz-content-sha256" in lowered

    def test_https_payload_is_unsigned(self):
        headers = sign_request_headers(AWS, "PUT", object_url(AWS, "k"), content_type="text/csv", body=b"a,b")
        lowered = {k.lower(): v for k, v in headers.items()}

        assert lowered["x-amz-content-sha256"] == "UNSIGNED-PAYLOAD"

    def test_plain_http_payload_is_hashed(self):
        headers = sign_request_headers(AWS, "PUT", "http://localhost:9000/labs-aws/k", body=b"a,b")
        lowered = {k.lower(): v for k, v in headers.items()}

        assert lowered["x-amz-content-sha256"] == hashlib.sha256(b"a,b").hexdigest()

    def test_no_acl_header_when_disabled(self):
        headers = sign_request_headers(AWS, "PUT", object_url(AWS, "k"), content_type="text/csv", acl=None)
        assert "x-amz-acl" not in {k.lower() for k in headers}

    def test_presigned_put_signs_content_type(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = "https://signed.example/put"

        url = generate_presigned_put_url(OORT, "uploads/1-a.csv", "text/csv", expiration=600, client=client)

        assert url == "https://signed.example/put"
        client.generate_presigned_url.assert_called_once_with(
            ClientMethod="put_object",
            Params={"Bucket": "labs-oort", "Key": "uploads/1-a.csv", "ContentType": "text/csv"},
            ExpiresIn=600,
        )


class TestErrorClassification:
    """Tests for connectivity error classification."""

    def test_invalid_access_key(self):
        error = client_error("InvalidAccessKeyId", 403, "ListBuckets")
        assert classify_connectivity_error(error) == ConnectivityErrorCategory.INVALID_ACCESS_KEY

    def test_invalid_secret(self):
        error = client_error("SignatureDoesNotMatch", 403, "ListBuckets")
        assert classify_connectivity_error(error) == ConnectivityErrorCategory.INVALID_SECRET

    @pytest.mark.parametrize("code,status", [("NoSuchBucket", 404), ("404", 404), ("403", 403), ("AccessDenied", 403)])
    def test_bucket_unavailable(self, code, status):
        error = client_error(code, status)
        assert is_bucket_unavailable(error) is True
        assert classify_connectivity_error(error) == ConnectivityErrorCategory.BUCKET_UNAVAILABLE

    def test_timeout_wins(self):
        assert classify_connectivity_error(asyncio.TimeoutError()) == ConnectivityErrorCategory.TIMEOUT
        assert classify_connectivity_error(httpx.ReadTimeout("slow")) == ConnectivityErrorCategory.TIMEOUT

    def test_network(self):
        error = EndpointConnectionError(endpoint_url="https://s3.example")
        assert classify_connectivity_error(error) == ConnectivityErrorCategory.NETWORK
        assert classify_connectivity_error(httpx.ConnectError("refused")) == ConnectivityErrorCategory.NETWORK

    def test_unknown(self):
        assert classify_connectivity_error(RuntimeError("boom")) == ConnectivityErrorCategory.UNKNOWN
        assert classify_connectivity_error(client_error("InternalError", 500)) == ConnectivityErrorCategory.UNKNOWN


class TestDescribeHttpError:
    """Tests for store error messages."""

    def test_xml_error_document(self):
        response = httpx.Response(
            403,
            text="<Error><Code>AccessDenied</Code><Message>Access Denied</Message></Error>",
        )
        assert describe_http_error(response) == "Upload failed with status 403: AccessDenied: Access Denied"

    def test_json_error(self):
        response = httpx.Response(400, json={"message": "bad request"})
        assert describe_http_error(response) == "Upload failed with status 400: bad request"

    def test_status_line_fallback(self):
        response = httpx.Response(500)
        assert describe_http_error(response) == "Upload failed with status 500 Internal Server Error"


class TestBucketCors:
    """Tests for bucket CORS configuration."""

    def test_default_rules(self):
        rules = build_cors_configuration()["CORSRules"][0]

        assert rules["AllowedOrigins"] == ["*"]
        assert "PUT" in rules["AllowedMethods"]
        assert "ETag" in rules["ExposeHeaders"]
        assert rules["MaxAgeSeconds"] == 3000

    def test_custom_origins(self):
        rules = build_cors_configuration(["https://labsmarket.example"])["CORSRules"][0]
        assert rules["AllowedOrigins"] == ["https://labsmarket.example"]

    def test_apply(self):
        client = MagicMock()

        message = apply_bucket_cors(client, "labs-aws")

        assert message == "CORS configuration successfully applied to bucket 'labs-aws'"
        client.put_bucket_cors.assert_called_once()
        assert client.put_bucket_cors.call_args.kwargs["Bucket"] == "labs-aws"

    def test_apply_reraises_client_error(self):
        client = MagicMock()
        client.put_bucket_cors.side_effect = client_error("InvalidAccessKeyId", 403, "PutBucketCors")

        with pytest.raises(ClientError):
            apply_bucket_cors(client, "labs-aws")
