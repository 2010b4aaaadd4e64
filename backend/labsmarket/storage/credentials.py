"""
Storage credential resolution.

Resolution order for get():
1. Stored per-provider override (if present and parseable)
2. Provider defaults (environment-provided through Settings)

save() writes the override wholesale, reset() deletes it. There is one
active credential set per provider and writes are last-write-wins.
"""
import json
import logging
from dataclasses import dataclass, asdict
from typing import List, Optional

from labsmarket.config import Settings, settings as default_settings
from labsmarket.models.upload import StorageProvider
from labsmarket.storage.errors import ConfigurationError
from labsmarket.storage.kv_store import (
    KeyValueStore,
    AWS_CREDENTIALS_KEY,
    OORT_CREDENTIALS_KEY,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageCredentials:
    """
    Credentials for one S3-compatible provider.

    AWS uses region + bucket (virtual-hosted URLs); OORT uses
    endpoint + bucket (path-style URLs).
    """
    access_key: str
    secret_key: str
    bucket: str
    region: Optional[str] = None
    endpoint: Optional[str] = None

    def missing_fields(self, require_endpoint: bool = False) -> List[str]:
        """Names of required fields that are empty."""
        missing = []
        if not self.access_key:
            missing.append("access_key")
        if not self.secret_key:
            missing.append("secret_key")
        if not self.bucket:
            missing.append("bucket")
        if require_endpoint and not self.endpoint:
            missing.append("endpoint")
        return missing

    @property
    def masked_access_key(self) -> str:
        """Access key safe for logs and API responses."""
        if not self.access_key:
            return ""
        return self.access_key[:5] + "..."

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "StorageCredentials":
        """
        Parse a stored override.

        Raises:
            ValueError: If the blob is not a JSON object with the expected fields
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("stored credentials must be a JSON object")
        try:
            return cls(
                access_key=str(data["access_key"]),
                secret_key=str(data["secret_key"]),
                bucket=str(data["bucket"]),
                region=data.get("region"),
                endpoint=data.get("endpoint"),
            )
        except KeyError as e:
            raise ValueError(f"stored credentials missing field {e}")


class CredentialResolver:
    """Resolves the active credentials of one provider."""

    def __init__(
        self,
        provider: StorageProvider,
        store: KeyValueStore,
        storage_key: str,
        defaults: StorageCredentials,
        require_endpoint: bool = False,
    ) -> None:
        self.provider = provider
        self._store = store
        self._storage_key = storage_key
        self._defaults = defaults
        self._require_endpoint = require_endpoint

    @property
    def defaults(self) -> StorageCredentials:
        return self._defaults

    def _read_override(self) -> Optional[StorageCredentials]:
        raw = self._store.get(self._storage_key)
        if raw is None:
            return None
        try:
            return StorageCredentials.from_json(raw)
        except ValueError as e:
            logger.error(f"Failed to parse stored {self.provider.value} credentials: {e}")
            return None

    def get(self) -> StorageCredentials:
        """Return the override if one is stored, otherwise the defaults."""
        override = self._read_override()
        if override is not None:
            return override
        return self._defaults

    def save(self, credentials: StorageCredentials) -> None:
        """Persist an override wholesale. Re-read with get() for fresh state."""
        self._store.set(self._storage_key, credentials.to_json())
        logger.info(
            f"Saved {self.provider.value} credentials override",
            extra={
                "provider": self.provider.value,
                "access_key": credentials.masked_access_key,
                "bucket": credentials.bucket,
            }
        )

    def reset(self) -> None:
        """Delete the override so get() returns the defaults again."""
        self._store.delete(self._storage_key)
        logger.info(f"Reset {self.provider.value} credentials to defaults")

    def is_using_override(self) -> bool:
        """True when get() resolves from a stored, parseable override."""
        return self._read_override() is not None

    def missing_fields(self, credentials: Optional[StorageCredentials] = None) -> List[str]:
        credentials = credentials or self.get()
        return credentials.missing_fields(require_endpoint=self._require_endpoint)

    def require_complete(self) -> StorageCredentials:
        """
        Return the active credentials, rejecting incomplete sets.

        Raises:
            ConfigurationError: If any required field is empty
        """
        credentials = self.get()
        missing = self.missing_fields(credentials)
        if missing:
            raise ConfigurationError(
                f"{self.provider.value} credentials not configured "
                f"(missing: {', '.join(missing)}). Please set up your credentials first.",
                missing_fields=missing,
            )
        return credentials


def aws_defaults(config: Settings = default_settings) -> StorageCredentials:
    return StorageCredentials(
        access_key=config.aws_access_key_id,
        secret_key=config.aws_secret_access_key,
        bucket=config.aws_bucket,
        region=config.aws_region,
        endpoint=config.aws_endpoint_url,
    )


def oort_defaults(config: Settings = default_settings) -> StorageCredentials:
    return StorageCredentials(
        access_key=config.oort_access_key,
        secret_key=config.oort_secret_key,
        bucket=config.oort_bucket,
        region=config.oort_region,
        endpoint=config.oort_endpoint,
    )


def create_credential_resolver(
    provider: StorageProvider,
    store: KeyValueStore,
    config: Settings = default_settings,
) -> CredentialResolver:
    """Build the resolver for a provider with defaults taken from settings."""
    if provider == StorageProvider.AWS:
        return CredentialResolver(provider, store, AWS_CREDENTIALS_KEY, aws_defaults(config))
    return CredentialResolver(
        provider,
        store,
        OORT_CREDENTIALS_KEY,
        oort_defaults(config),
        require_endpoint=True,
    )

