"""
Real vs simulated storage mode.

Each provider has one boolean flag ("real" mode uploads to the actual
store, "simulated" mode returns a realistic URL without any network
call). The flag lives in an explicit handle created by
StorageMode.initialize() and passed to orchestrators, so concurrent
sessions and test runs never share ambient state unless they share a
key-value store on purpose.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from labsmarket.models.upload import StorageProvider
from labsmarket.storage.kv_store import KeyValueStore, USE_REAL_AWS_KEY, USE_REAL_OORT_KEY

logger = logging.getLogger(__name__)

_MODE_KEYS = {
    StorageProvider.AWS: USE_REAL_AWS_KEY,
    StorageProvider.OORT: USE_REAL_OORT_KEY,
}


@dataclass(frozen=True)
class StorageModeConfig:
    """
    Initialization options for a provider's mode flag.

    Attributes:
        provider: Provider the flag belongs to
        default_real: Value used when nothing is persisted
        force_real: Ignore any persisted value and start in real mode
    """
    provider: StorageProvider
    default_real: bool = True
    force_real: bool = False


class StorageModeHandle:
    """Mutable mode flag for one provider."""

    def __init__(
        self,
        provider: StorageProvider,
        is_real: bool,
        store: Optional[KeyValueStore] = None,
    ) -> None:
        self.provider = provider
        self._is_real = is_real
        self._store = store

    @property
    def is_real(self) -> bool:
        return self._is_real

    def set_real(self, use_real: bool) -> None:
        self._is_real = use_real
        if self._store is not None:
            self._store.set(_MODE_KEYS[self.provider], "true" if use_real else "false")
        logger.info(
            f"{self.provider.value} storage mode: {'real' if use_real else 'simulated'}",
            extra={"provider": self.provider.value, "use_real": use_real}
        )

    def toggle_mode(self) -> bool:
        """Flip between real and simulated mode. Returns the new value."""
        self.set_real(not self._is_real)
        return self._is_real


class StorageMode:
    """Factory for mode handles."""

    @staticmethod
    def initialize(
        config: StorageModeConfig,
        store: Optional[KeyValueStore] = None,
    ) -> StorageModeHandle:
        """
        Create the mode handle for a provider.

        A persisted flag is honoured unless force_real is set; forced
        initialization writes the real-mode flag back to the store.
        """
        if config.force_real:
            handle = StorageModeHandle(config.provider, True, store)
            handle.set_real(True)
            return handle

        is_real = config.default_real
        if store is not None:
            persisted = store.get(_MODE_KEYS[config.provider])
            if persisted is not None:
                is_real = persisted == "true"

        return StorageModeHandle(config.provider, is_real, store)
