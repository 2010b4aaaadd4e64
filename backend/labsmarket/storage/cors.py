"""
Bucket CORS configuration.

Browsers uploading straight to the bucket need PUT/POST allowed and the
ETag and request-id headers exposed.
"""
import logging
from typing import Dict, List, Optional, Sequence

from botocore.exceptions import ClientError

from labsmarket.storage.errors import client_error_code

logger = logging.getLogger(__name__)

CORS_ALLOWED_METHODS = ["GET", "PUT", "POST", "DELETE", "HEAD"]
CORS_EXPOSE_HEADERS = [
    "ETag",
    "x-amz-server-side-encryption",
    "x-amz-request-id",
    "x-amz-id-2",
]
CORS_MAX_AGE_SECONDS = 3000


def build_cors_configuration(origins: Optional[Sequence[str]] = None) -> Dict[str, List[dict]]:
    """CORS rules allowing direct uploads from the given origins (all by default)."""
    return {
        "CORSRules": [
            {
                "AllowedHeaders": ["*"],
                "AllowedMethods": list(CORS_ALLOWED_METHODS),
                "AllowedOrigins": list(origins) if origins else ["*"],
                "ExposeHeaders": list(CORS_EXPOSE_HEADERS),
                "MaxAgeSeconds": CORS_MAX_AGE_SECONDS,
            }
        ]
    }


def apply_bucket_cors(client, bucket: str, origins: Optional[Sequence[str]] = None) -> str:
    """
    Write the CORS rules to the bucket (blocking boto3 call).

    Returns:
        Human-readable confirmation

    Raises:
        ClientError: If the store rejects the configuration. InvalidAccessKeyId
            and SignatureDoesNotMatch are logged with a credential hint first.
    """
    configuration = build_cors_configuration(origins)
    try:
        client.put_bucket_cors(Bucket=bucket, CORSConfiguration=configuration)
    except ClientError as e:
        code = client_error_code(e)
        if code == "InvalidAccessKeyId":
            logger.error("Access key ID is invalid. Check the configured access key.")
        elif code == "SignatureDoesNotMatch":
            logger.error("Secret access key is invalid. Check the configured secret key.")
        else:
            logger.error(f"Error configuring CORS for bucket {bucket}: {code}")
        raise

    logger.info(f"CORS configuration applied to bucket {bucket}")
    return f"CORS configuration successfully applied to bucket '{bucket}'"
