"""
Database models package.
"""
from labsmarket.models.base import Base
from labsmarket.models.upload import Upload, StorageProvider

__all__ = [
    "Base",
    "Upload",
    "StorageProvider",
]
