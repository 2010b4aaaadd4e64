"""
Test configuration and fixtures.
Uses in-memory SQLite (aiosqlite) and an in-memory key-value store, so no
Postgres, Redis or object store is needed.
"""
import os

# Set test environment before any imports
os.environ["ENVIRONMENT"] = "test"
os.environ["KV_BACKEND"] = "memory"
os.environ.pop("DATABASE_URL", None)

import pytest
from typing import AsyncGenerator, List, Optional
from unittest.mock import MagicMock

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from labsmarket.config import Settings
from labsmarket.models.base import Base
from labsmarket.schemas.storage import ConnectivityDetails, ConnectivityResult
from labsmarket.services.notifications import CollectingNotifier
from labsmarket.services.points_service import UploadTracker
from labsmarket.services.upload_service import UploadService
from labsmarket.storage.errors import ConnectivityError, ConnectivityErrorCategory
from labsmarket.storage.kv_store import MemoryKeyValueStore
from labsmarket.storage.results import UploadFailure, UploadSuccess
from labsmarket.storage.s3_client import object_url
from labsmarket.storage.validation import FilePayload


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with complete credentials for both providers and no delays."""
    return Settings(
        _env_file=None,
        database_url=None,
        kv_backend="memory",
        aws_access_key_id="AKIAEXAMPLEKEY",
        aws_secret_access_key="aws-secret",
        aws_region="us-east-1",
        aws_bucket="labs-aws",
        oort_access_key="OORTEXAMPLEKEY",
        oort_secret_key="oort-secret",
        oort_endpoint="https://s3-standard.oortech.com",
        oort_bucket="labs-oort",
        simulated_upload_delay_seconds=0.01,
        progress_interval_seconds=0.005,
    )


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory bound to a fresh in-memory database."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield factory

    await engine.dispose()


@pytest.fixture
def tracker(session_factory) -> UploadTracker:
    return UploadTracker(session_factory)


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


def make_file(
    name: str = "data.csv",
    content_type: str = "text/csv",
    data: bytes = b"a,b\n1,2\n",
    size: Optional[int] = None,
) -> FilePayload:
    return FilePayload(name=name, content_type=content_type, data=data, size=size)


@pytest.fixture
def csv_file() -> FilePayload:
    return make_file()


class FakeProber:
    """Stands in for ConnectivityProber; records calls instead of hitting the network."""

    def __init__(self, provider, credentials, bucket_error: Optional[ConnectivityError] = None,
                 result: Optional[ConnectivityResult] = None):
        self.provider = provider
        self.credentials = credentials
        self.bucket_error = bucket_error
        self.result = result or ConnectivityResult(
            success=True,
            message=f"Successfully connected to bucket '{credentials.bucket}' with write access.",
            details=ConnectivityDetails(credentials_valid=True, bucket_accessible=True, write_permission=True),
        )
        self.bucket_checks = 0

    async def check_bucket(self, available_buckets=None):
        self.bucket_checks += 1
        if self.bucket_error is not None:
            raise self.bucket_error

    async def test_connection(self):
        return self.result


class FakeOrchestrator:
    """Returns a fixed result and drives progress like a real orchestrator."""

    def __init__(self, credentials, mode, result=None):
        self.credentials = credentials
        self.mode = mode
        self.result = result
        self.calls: List[tuple] = []

    async def upload(self, file, path=None, progress=None):
        self.calls.append((file, path))
        key = f"{path or ''}1718000000000-{file.name}"
        result = self.result or UploadSuccess(
            url=object_url(self.credentials, key),
            key=key,
            strategy="simulated" if not self.mode.is_real else "fake",
        )
        if progress is not None:
            progress.start()
            if result.success:
                progress.succeed()
            else:
                progress.fail()
        return result


class ServiceHarness:
    """UploadService wired to fakes, with knobs for the next prober/orchestrator."""

    def __init__(self, settings: Settings, store, tracker, notifier):
        self.bucket_error: Optional[ConnectivityError] = None
        self.probe_result: Optional[ConnectivityResult] = None
        self.upload_result = None
        self.probers: List[FakeProber] = []
        self.orchestrators: List[FakeOrchestrator] = []
        self.s3_client = MagicMock()
        self.service = UploadService(
            store,
            settings,
            tracker=tracker,
            notifier=notifier,
            orchestrator_factory=self._orchestrator,
            prober_factory=self._prober,
            client_factory=lambda credentials, **kw: self.s3_client,
        )

    def _prober(self, provider, credentials):
        prober = FakeProber(provider, credentials, self.bucket_error, self.probe_result)
        self.probers.append(prober)
        return prober

    def _orchestrator(self, provider, credentials, mode):
        orchestrator = FakeOrchestrator(credentials, mode, self.upload_result)
        self.orchestrators.append(orchestrator)
        return orchestrator


@pytest.fixture
def harness(test_settings, kv_store, tracker, notifier) -> ServiceHarness:
    return ServiceHarness(test_settings, kv_store, tracker, notifier)


@pytest.fixture
def service(harness) -> UploadService:
    return harness.service


@pytest.fixture(scope="function")
async def client(harness) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    from labsmarket.main import app
    from labsmarket.api.dependencies import get_upload_service

    app.dependency_overrides[get_upload_service] = lambda: harness.service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clean up overrides
    app.dependency_overrides.clear()


def bucket_unavailable(bucket: str = "labs-aws") -> ConnectivityError:
    return ConnectivityError(
        f"Bucket '{bucket}' does not exist or you don't have access to it.",
        reason=ConnectivityErrorCategory.BUCKET_UNAVAILABLE,
    )


def transfer_failure(message: str = "Upload failed with status 403 Forbidden") -> UploadFailure:
    return UploadFailure(error=message, status_code=403, category="transfer", attempts=("sdk_put: denied",))

