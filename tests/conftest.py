"""Pytest configuration and fixtures."""

import logging

import pytest
import pytest_asyncio

from refresher.database import Database
from refresher.observability import health_state
from tests.support import FakeProvider, FixedClock

# Configure pytest-asyncio to auto-detect async tests
pytest_plugins = ("pytest_asyncio",)


def pytest_configure(config: pytest.Config) -> None:
    for name in ("botocore", "boto3", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)


@pytest_asyncio.fixture
async def test_db():
    """Create a fresh in-memory database for each test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.init_db()
    yield db
    await db.close()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture(autouse=True)
def _reset_health_state():
    health_state.reset()
    yield
    health_state.reset()
