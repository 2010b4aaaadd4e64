"""
Upload tracking and contribution points.

Every successful upload is recorded in the uploads table and earns points:

    base 1
    + 1 for images
    + floor(MB x 0.05)
    + 2 for files over 10MB
    + 3 for data files (CSV, JSON, Excel)
    capped at 20

Tracking is best-effort. The points callback runs even when the record
cannot be stored. Without a database an unsaved record is returned; a
database or callback failure is logged and reported as None, and never
invalidates the upload.
"""
import inspect
import logging
import math
from typing import Awaitable, Callable, List, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from labsmarket.models.base import generate_uuid, utcnow
from labsmarket.models.upload import StorageProvider, Upload
from labsmarket.storage.errors import TrackingError
from labsmarket.utils.logging import log_tracking_failed, log_upload_tracked
from labsmarket.utils.metrics import tracking_failures_total, upload_points_awarded_total

logger = logging.getLogger(__name__)

PointsCallback = Callable[[int], Union[None, Awaitable[None]]]

BASE_POINTS = 1
IMAGE_POINTS = 1
SIZE_MULTIPLIER = 0.05  # ~1 point per 20MB
BONUS_THRESHOLD_MB = 10
BONUS_POINTS = 2
DATA_FILE_BONUS = 3
MAX_POINTS_PER_UPLOAD = 20

DATA_FILE_TYPES = frozenset([
    'text/csv',
    'application/json',
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
])
DATA_FILE_EXTENSIONS = ('.csv', '.json', '.xls', '.xlsx')


def is_data_file(file_type: str, file_name: str = "") -> bool:
    return file_type in DATA_FILE_TYPES or file_name.lower().endswith(DATA_FILE_EXTENSIONS)


def calculate_upload_points(file_size: int, file_type: str, file_name: str = "") -> int:
    """
    Points for one upload.

    Args:
        file_size: Size in bytes
        file_type: MIME type
        file_name: Original file name (data files are also detected by extension)

    Returns:
        Points between 1 and MAX_POINTS_PER_UPLOAD
    """
    size_mb = file_size / (1024 * 1024)
    file_type = file_type or ""

    points = BASE_POINTS
    if file_type.startswith('image/'):
        points += IMAGE_POINTS
    points += math.floor(size_mb * SIZE_MULTIPLIER)
    if size_mb > BONUS_THRESHOLD_MB:
        points += BONUS_POINTS
    if is_data_file(file_type, file_name):
        points += DATA_FILE_BONUS

    return min(points, MAX_POINTS_PER_UPLOAD)


async def _award(points_callback: Optional[PointsCallback], points: int) -> None:
    if points_callback is None:
        return
    try:
        result = points_callback(points)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        raise TrackingError(f"points callback failed: {e}") from e


class UploadTracker:
    """Records uploads and awards points. Pass session_factory=None to run without a database."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None) -> None:
        self._session_factory = session_factory

    async def _persist(self, record: Upload) -> None:
        try:
            async with self._session_factory() as db:
                db.add(record)
                await db.commit()
                await db.refresh(record)
        except Exception as e:
            raise TrackingError(f"failed to record upload: {e}") from e

    @property
    def is_configured(self) -> bool:
        return self._session_factory is not None

    async def track(
        self,
        user_id: str,
        file_name: str,
        file_size: int,
        file_type: str,
        provider: StorageProvider,
        upload_url: str,
        points_callback: Optional[PointsCallback] = None,
    ) -> Optional[Upload]:
        """
        Record a successful upload and award its points.

        Returns:
            The stored record, an unsaved record when no database is
            configured, or None if recording or awarding failed
        """
        points = calculate_upload_points(file_size, file_type, file_name)
        record = Upload(
            id=generate_uuid(),
            user_id=user_id,
            file_name=file_name,
            file_size=file_size,
            file_type=file_type,
            storage_provider=provider,
            upload_url=upload_url,
            points_awarded=points,
            created_at=utcnow(),
        )

        persisted = False
        if self._session_factory is not None:
            try:
                await self._persist(record)
                persisted = True
            except TrackingError as e:
                log_tracking_failed(logger, user_id=user_id, provider=provider.value, error=str(e))
                tracking_failures_total.inc()
        else:
            logger.warning("Database not configured, skipping upload tracking")

        # Points are awarded even when the record could not be stored
        try:
            await _award(points_callback, points)
        except TrackingError as e:
            log_tracking_failed(logger, user_id=user_id, provider=provider.value, error=str(e))
            tracking_failures_total.inc()
            return None

        if self._session_factory is not None and not persisted:
            return None

        upload_points_awarded_total.labels(provider=provider.value).inc(points)
        log_upload_tracked(
            logger,
            user_id=user_id,
            provider=provider.value,
            points=points,
            upload_id=record.id,
            persisted=persisted,
        )
        return record

    async def get_history(self, user_id: str, limit: Optional[int] = None) -> List[Upload]:
        """Uploads of a user, newest first. Empty when unavailable."""
        if self._session_factory is None:
            logger.warning("Database not configured, cannot fetch upload history")
            return []

        query = (
            select(Upload)
            .where(Upload.user_id == user_id)
            .order_by(Upload.created_at.desc())
        )
        if limit:
            query = query.limit(limit)

        try:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return list(result.scalars().all())
        except Exception as e:
            logger.error(f"Error fetching upload history for user {user_id}: {e}")
            return []

    async def get_total_points(self, user_id: str) -> int:
        """Sum of points awarded to a user. 0 when unavailable."""
        if self._session_factory is None:
            logger.warning("Database not configured, cannot fetch total points")
            return 0

        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(func.coalesce(func.sum(Upload.points_awarded), 0))
                    .where(Upload.user_id == user_id)
                )
                return int(result.scalar_one())
        except Exception as e:
            logger.error(f"Error fetching total points for user {user_id}: {e}")
            return 0
