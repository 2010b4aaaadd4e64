"""
File validation performed before any network call.

Only declared metadata (size and MIME type) is inspected; file content
is never read.
"""
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB

ALLOWED_FILE_TYPES = frozenset([
    # Images
    'image/jpeg', 'image/png', 'image/gif', 'image/webp', 'image/svg+xml',
    # Documents
    'application/pdf', 'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    # Data
    'application/json', 'text/csv', 'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    # Video
    'video/mp4', 'video/webm',
    # Audio
    'audio/mpeg', 'audio/wav', 'audio/ogg',
    # Plain text
    'text/plain',
])

DEFAULT_CONTENT_TYPE = 'application/octet-stream'


@dataclass
class FilePayload:
    """
    A file to upload.

    `size` defaults to len(data) but may be declared separately, the way
    a browser File object reports its size before it is read.
    """
    name: str
    content_type: str
    data: bytes = b""
    size: Optional[int] = None

    def __post_init__(self):
        if self.size is None:
            self.size = len(self.data)

    @property
    def size_mb(self) -> float:
        return self.size / (1024 * 1024)

    @property
    def upload_content_type(self) -> str:
        """MIME type sent to the store (octet-stream when undeclared)."""
        return self.content_type or DEFAULT_CONTENT_TYPE

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "FilePayload":
        """Load a local file, guessing its MIME type from the extension."""
        file_path = Path(path)
        if content_type is None:
            content_type, _ = mimetypes.guess_type(file_path.name)
        return cls(
            name=file_path.name,
            content_type=content_type or "",
            data=file_path.read_bytes(),
        )


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


def validate_file(
    file: Optional[FilePayload],
    max_size: int = MAX_FILE_SIZE,
    allowed_types: Iterable[str] = ALLOWED_FILE_TYPES,
) -> ValidationResult:
    """
    Validate a file before upload.

    Rules are checked in order and the first failure wins:
    1. A file must be given
    2. Size must not exceed max_size
    3. MIME type must be in the allow-list

    Args:
        file: File to check (None when nothing was selected)
        max_size: Size ceiling in bytes
        allowed_types: Accepted MIME types

    Returns:
        ValidationResult with valid=False and a user-facing error on failure
    """
    if file is None:
        return ValidationResult(valid=False, error="No file selected")

    if file.size > max_size:
        return ValidationResult(
            valid=False,
            error=(
                f"File size exceeds {max_size // (1024 * 1024)}MB limit "
                f"({file.size_mb:.2f}MB)"
            )
        )

    if file.content_type not in allowed_types:
        return ValidationResult(
            valid=False,
            error=f"File type {file.content_type or 'unknown'} is not supported"
        )

    return ValidationResult(valid=True)
