"""
Pytest configuration and shared fixtures.
"""
import pytest
from httpx import AsyncClient, ASGITransport

from tradesync.api.main import app
from tradesync.infrastructure.persistence.memory_repo import (
    InMemoryOrderRepository,
    InMemoryPositionRepository,
    InMemorySyncStateStore,
)
from helpers import FakeClock, RecordingSleep


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def order_repo():
    return InMemoryOrderRepository()


@pytest.fixture
def position_repo(order_repo):
    return InMemoryPositionRepository(order_repo)


@pytest.fixture
def state_store():
    return InMemorySyncStateStore(clock_ms=lambda: 1_800_000_000_000)


@pytest.fixture
async def client():
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
