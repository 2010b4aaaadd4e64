"""
Terminal outcome of an upload request.
"""
import enum
from dataclasses import dataclass, field
from typing import List, Optional

from labsmarket.models.upload import StorageProvider, Upload
from labsmarket.storage.results import UploadResult


class UploadStage(str, enum.Enum):
    """Where an upload request ended. Exactly one per request."""
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    CONNECTIVITY = "connectivity"
    TRANSFER = "transfer"
    TRACKING = "tracking"
    COMPLETE = "complete"


@dataclass
class UploadOutcome:
    """
    Result of UploadService.upload_file.

    TRACKING means the file was delivered but recording it or awarding
    points failed, so `success` is still True.
    """
    stage: UploadStage
    provider: StorageProvider
    file_name: str = ""
    result: Optional[UploadResult] = None
    error: Optional[str] = None
    record: Optional[Upload] = None
    points: Optional[int] = None
    simulated: bool = False
    attempts: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.stage in (UploadStage.COMPLETE, UploadStage.TRACKING)

    @property
    def url(self) -> Optional[str]:
        if self.result is not None and self.result.success:
            return self.result.url
        return None
