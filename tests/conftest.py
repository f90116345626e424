"""Pytest configuration and fixtures."""

from typing import AsyncGenerator, Callable, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt

from vitals_monitor.core.ingestion import IngestionGateway
from vitals_monitor.core.models import Principal
from vitals_monitor.core.queries import QueryService
from vitals_monitor.db.memory import InMemoryStorage
from vitals_monitor.main import create_app
from vitals_monitor.settings import Settings

TEST_JWT_SECRET = "test-jwt-secret"
TEST_INGEST_KEY = "test-ingest-key"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with known secrets and in-memory storage."""
    return Settings(
        storage_backend="memory",
        jwt_secret=TEST_JWT_SECRET,
        ingest_api_key=TEST_INGEST_KEY
    )


@pytest.fixture
def test_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def device() -> Principal:
    """Principal cleared for ingestion."""
    return Principal(subject="device", can_ingest=True)


@pytest.fixture
def gateway(test_storage: InMemoryStorage) -> IngestionGateway:
    return IngestionGateway(storage=test_storage)


@pytest.fixture
def query_service(test_storage: InMemoryStorage) -> QueryService:
    return QueryService(storage=test_storage)


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build signed Bearer tokens."""
    def _make(subject: str = "user_123", secret: str = TEST_JWT_SECRET, **claims) -> str:
        return jwt.encode({"sub": subject, **claims}, secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def ingest_headers() -> Dict[str, str]:
    return {"x-api-key": TEST_INGEST_KEY}


@pytest.fixture
async def test_client(
    test_settings: Settings,
    test_storage: InMemoryStorage
) -> AsyncGenerator[AsyncClient, None]:
    """Provide test HTTP client over an app bound to in-memory storage."""
    app = create_app(settings=test_settings, storage=test_storage)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
