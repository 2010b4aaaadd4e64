"""
Upload model for tracking contributed files.

Stores metadata about files uploaded to object storage and the points
awarded for them. The actual file bytes live in AWS S3 or OORT Storage,
not in the database.

Lifecycle:
1. File is delivered to the storage provider
2. Tracker computes the point score and inserts one row
3. Row is never updated afterwards; history and point totals are
   read back by user_id
"""
import enum
from sqlalchemy import Column, String, Enum, Integer, BigInteger, DateTime, Index

from labsmarket.models.base import Base, generate_uuid, utcnow


class StorageProvider(str, enum.Enum):
    """Object storage provider an upload was delivered to."""
    OORT = "OORT"
    AWS = "AWS"

    @classmethod
    def parse(cls, value: str) -> "StorageProvider":
        """Case-insensitive lookup ("aws", "AWS", "oort" ...)."""
        try:
            return cls(value.upper())
        except ValueError:
            raise ValueError(
                f"Invalid storage provider: {value}. Must be 'aws' or 'oort'"
            )


class Upload(Base):
    """
    Upload record model.

    Attributes:
        id: Unique identifier (UUID)
        user_id: Contributor who uploaded the file
        file_name: Original file name
        file_size: File size in bytes
        file_type: MIME type declared for the file
        storage_provider: OORT or AWS
        upload_url: Public URL of the stored object
        points_awarded: Points granted for this upload
        created_at: When the upload was tracked
    """
    __tablename__ = "uploads"

    # Primary key
    id = Column(String, primary_key=True, default=generate_uuid)

    # Contributor (wallet or auth provider user id)
    user_id = Column(String, nullable=False)

    file_name = Column(String, nullable=False)
    file_size = Column(BigInteger, nullable=False)
    file_type = Column(String, nullable=False)

    storage_provider = Column(Enum(StorageProvider), nullable=False)

    # Public object URL
    # Example: https://s3-standard.oortech.com/labsmarket/uploads/1718000000000-data.csv
    upload_url = Column(String, nullable=False)

    points_awarded = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Indexes for common queries
    __table_args__ = (
        # History and point totals are always filtered by user, newest first
        Index('ix_uploads_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return (
            f"<Upload(id={self.id}, user={self.user_id}, "
            f"provider={self.storage_provider.value}, points={self.points_awarded})>"
        )
