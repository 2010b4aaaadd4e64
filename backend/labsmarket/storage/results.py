"""
Normalized upload results.

Every orchestrator returns exactly one of UploadSuccess or UploadFailure;
exceptions never escape to callers.
"""
from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class UploadSuccess:
    """File delivered. `verified` is only set by providers that re-check access."""
    url: str
    key: str
    verified: Optional[bool] = None
    strategy: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class UploadFailure:
    """File not delivered."""
    error: str
    status_code: Optional[int] = None
    category: Optional[str] = None
    attempts: Tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return False


UploadResult = Union[UploadSuccess, UploadFailure]
