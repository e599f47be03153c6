"""
Shared test configuration and fixtures
"""
import asyncio
import pytest
import os
from fastapi.testclient import TestClient

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SKIP_SCHEDULER"] = "true"  # Skip auto-resume during tests
os.environ.setdefault("LOG_FILE", "test_log.txt")

from main import app
from db.base import Base
from db.engine import engine
from api.services.probe_service import Classification, ProbeResult


class FakeExecutor:
    """Probe executor stand-in: per-URL canned results and delays, no network"""

    def __init__(self, results=None, delays=None, default=None):
        self.results = results or {}
        self.delays = delays or {}
        self.default = default or ProbeResult(Classification.SUCCESS, 42, http_status=200)
        self.calls = []

    async def probe(self, url, timeout_ms=None):
        self.calls.append(url)
        delay = self.delays.get(url, 0)
        if delay:
            await asyncio.sleep(delay)
        return self.results.get(url, self.default)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture(scope="function")
def test_db():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(test_db, fake_executor):
    """Create a test client whose monitor never touches the network"""
    with TestClient(app) as test_client:
        app.state.monitor_service.scheduler.executor = fake_executor
        yield test_client


@pytest.fixture
def executor_factory():
    return FakeExecutor
