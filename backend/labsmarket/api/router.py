"""
API router aggregator.
Includes all route modules.
"""
from fastapi import APIRouter
from labsmarket.api import health, storage, uploads

api_router = APIRouter()

# Include route modules
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(storage.router, prefix="/storage", tags=["storage"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
