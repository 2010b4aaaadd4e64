"""
Health check endpoint.
Verifies database and key-value store connectivity.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text

from labsmarket.api.dependencies import get_upload_service
from labsmarket.database import get_session_factory
from labsmarket.services.upload_service import UploadService
from labsmarket.storage.kv_store import RedisKeyValueStore

router = APIRouter()


@router.get("")
async def health_check(service: UploadService = Depends(get_upload_service)):
    """
    Health check endpoint.
    Returns status of the database and the key-value store.
    An unconfigured database is reported but does not make the service unhealthy.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "kv_store": "unknown"
    }

    # Check database
    factory = get_session_factory()
    if factory is None:
        health_status["database"] = "not configured"
    else:
        try:
            async with factory() as db:
                await db.execute(text("SELECT 1"))
            health_status["database"] = "connected"
        except Exception as e:
            health_status["database"] = f"error: {str(e)}"
            health_status["status"] = "unhealthy"

    # Check key-value store
    store = service.store
    if isinstance(store, RedisKeyValueStore):
        try:
            store.ping()
            health_status["kv_store"] = "connected"
        except Exception as e:
            health_status["kv_store"] = f"error: {str(e)}"
            health_status["status"] = "unhealthy"
    else:
        health_status["kv_store"] = type(store).__name__

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
