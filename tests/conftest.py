"""
Main pytest configuration for the backend tests.

Every test gets its own SQLite database file, a fresh in-process cache and,
for API tests, an application whose app.state is populated directly instead
of through the lifespan.
"""

import os
import time

import httpx
import pytest

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./portfolio-test.db"
os.environ["REDIS_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["ADMIN_TOKEN"] = "test-admin-token"

from portfolio_api.core.config import Settings
from portfolio_api.core.database import DatabaseManager
from portfolio_api.db.query_executor import QueryExecutor
from portfolio_api.main import create_app
from portfolio_api.services.cache.cache_manager import CacheManager
from portfolio_api.services.cache.memory_cache import MemoryCache

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway database and log directory."""
    return Settings(
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'portfolio.db'}",
        DATABASE_POOL_SIZE=5,
        DATABASE_MAX_OVERFLOW=0,
        DATABASE_POOL_TIMEOUT=5,
        LOG_DIR=str(tmp_path / "logs"),
        REDIS_ENABLED=False,
        ADMIN_TOKEN=ADMIN_TOKEN,
    )


@pytest.fixture
async def database(settings):
    manager = DatabaseManager(settings)
    await manager.initialize()
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def memory_cache():
    return MemoryCache(default_ttl=600, max_keys=500, check_period=300)


@pytest.fixture
def cache_manager(memory_cache):
    return CacheManager(memory_cache, None)


@pytest.fixture
def executor(database, memory_cache):
    return QueryExecutor(
        database.engine,
        memory_cache,
        slow_query_threshold_ms=1000,
        metrics=database.metrics,
    )


@pytest.fixture
def app(settings, database, cache_manager, executor):
    application = create_app(settings)
    application.state.database = database
    application.state.cache = cache_manager
    application.state.executor = executor
    application.state.started_at = time.time()
    return application


@pytest.fixture
async def client(app):
    """HTTP client bound to the in-process ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
