# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from datetime import datetime, timedelta, timezone
from typing import List
from unittest.mock import MagicMock

from pos_core.auth import CredentialBroker
from pos_core.offline import (
    LocalStore,
    ReconciliationEngine,
    RetryPolicy,
    ServiceHealthMonitor,
    SessionStore,
    User,
    linear_backoff,
)
from pos_core.remote import MockDirectory


# =============================================================================
# CLOCK
# =============================================================================

class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def sleeps() -> List[float]:
    """Records delays instead of sleeping"""
    return []


# =============================================================================
# LOCAL STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def store(tmp_path):
    """Initialized store with the demo seed"""
    local = LocalStore(tmp_path / "pos_users.db")
    local.initialize()
    yield local
    local.close()


@pytest.fixture
def empty_store(tmp_path):
    """Initialized store without demo users"""
    local = LocalStore(tmp_path / "empty.db", seed_demo_users=False)
    local.initialize()
    yield local
    local.close()


@pytest.fixture
def session_store(store):
    return SessionStore(store)


@pytest.fixture
def make_user():
    """Factory for remote-shaped users"""
    def _make(index: int = 1, **overrides) -> User:
        values = {
            "id": f"user-{index}",
            "name": f"Staff Member {index}",
            "email": f"staff{index}@techcorp.com",
            "credential_secret": "secret123",
            "role": "cashier",
        }
        values.update(overrides)
        return User(**values)
    return _make


# =============================================================================
# REMOTE FIXTURES
# =============================================================================

@pytest.fixture
def directory():
    """In-memory remote directory with the demo users"""
    return MockDirectory()


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for testing"""
    mock_client = MagicMock()
    query = mock_client.table.return_value
    for method in ("select", "eq", "limit", "order", "range", "insert", "update"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[])
    return mock_client


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def retry_policy(sleeps):
    return RetryPolicy(max_attempts=3, backoff=linear_backoff(2.0), sleep=sleeps.append)


@pytest.fixture
def monitor(directory, retry_policy):
    """Monitor already in online mode"""
    health = ServiceHealthMonitor(directory, retry_policy=retry_policy)
    health.report_success()
    return health


@pytest.fixture
def engine(store, directory, session_store, monitor, clock):
    sync_engine = ReconciliationEngine(store, directory, session_store, monitor=monitor, clock=clock)
    yield sync_engine
    sync_engine.shutdown(wait=True)


@pytest.fixture
def broker(store, directory, session_store, engine, monitor):
    return CredentialBroker(store, directory, session_store, engine, monitor)
