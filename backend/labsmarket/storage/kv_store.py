"""
Durable key-value state for storage preferences.

Holds the per-provider credential overrides (JSON blobs) and the
real/simulated storage mode flags. Three backends share one small
protocol so the credential resolver and mode handle never care where
the state lives:

- RedisKeyValueStore: shared deployments
- FileKeyValueStore: single-user CLI / local development
- MemoryKeyValueStore: tests
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

# Keys used by the storage layer
AWS_CREDENTIALS_KEY = "aws_credentials"
OORT_CREDENTIALS_KEY = "oort_credentials"
USE_REAL_AWS_KEY = "use_real_aws"
USE_REAL_OORT_KEY = "use_real_oort"


class KeyValueStore(Protocol):
    """Minimal string key-value interface."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """In-process store. State is lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """
    JSON file store.

    The whole file is rewritten on every change through a temporary file
    and os.replace, so a crash never leaves a half-written document.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read key-value file {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Ignoring malformed key-value file {self._path}")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class RedisKeyValueStore:
    """Redis-backed store. Keys are namespaced with a prefix."""

    def __init__(self, redis_url: str, prefix: str = "labsmarket:") -> None:
        import redis

        self._client = redis.from_url(redis_url, decode_responses=True)
        self._prefix = prefix

    def get(self, key: str) -> Optional[str]:
        return self._client.get(self._prefix + key)

    def set(self, key: str, value: str) -> None:
        self._client.set(self._prefix + key, value)

    def delete(self, key: str) -> None:
        self._client.delete(self._prefix + key)

    def ping(self) -> bool:
        return bool(self._client.ping())


def create_kv_store(
    backend: str = "file",
    file_path: str = ".labsmarket/state.json",
    redis_url: Optional[str] = None,
) -> KeyValueStore:
    """
    Create the key-value store for the configured backend.

    Args:
        backend: "redis", "file" or "memory"
        file_path: JSON file location for the file backend
        redis_url: Redis URL for the redis backend

    Raises:
        ValueError: If the backend name is unknown or redis_url is missing
    """
    backend = backend.lower()

    if backend == "memory":
        return MemoryKeyValueStore()

    if backend == "file":
        return FileKeyValueStore(file_path)

    if backend == "redis":
        if not redis_url:
            raise ValueError("redis_url is required for the redis key-value backend")
        return RedisKeyValueStore(redis_url)

    raise ValueError(
        f"Invalid key-value backend: {backend}. "
        f"Must be one of: 'redis', 'file', 'memory'"
    )
