"""
FastAPI application entry point.
Sets up the API with lifespan events for database initialization.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from labsmarket.config import settings
from labsmarket.database import init_db, dispose_engine
from labsmarket.api.router import api_router
from labsmarket.middleware.metrics_middleware import MetricsMiddleware
from labsmarket.utils.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    - Startup: Configure logging, create tables when a database is configured
    - Shutdown: Dispose the database engine
    """
    configure_logging('labsmarket-api', settings.log_level)

    await init_db()

    yield

    await dispose_engine()


# Create FastAPI app
app = FastAPI(
    title="LabsMarket Storage API",
    description="Upload, connectivity and contribution points backend for LabsMarket",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics middleware (must be after CORS to track all requests)
app.add_middleware(MetricsMiddleware)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "LabsMarket Storage API",
        "version": "0.1.0",
        "environment": settings.environment
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
