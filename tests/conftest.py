# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from typing import Any
from unittest.mock import MagicMock

from finance_core.api import BaseTransport, TransportResponse
from finance_core.config import OfflineSettings
from finance_core.errors import NetworkUnavailable
from finance_core.offline import LocalStore, ManualReachability, SyncCoordinator


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_customers():
    """Customer collection as returned by the API"""
    return [
        {"id": 1, "name": "A", "phone": "9000000001"},
        {"id": 2, "name": "B", "phone": "9000000002"},
    ]


@pytest.fixture
def sample_loan():
    """Single loan object"""
    return {"id": 17, "customer_id": 1, "amount": 500, "status": "active"}


# =============================================================================
# RESPONSE HELPERS
# =============================================================================

def ok(body: Any = None, status: int = 200) -> TransportResponse:
    """Successful transport response"""
    return TransportResponse(ok=True, status=status, body=body)


def rejected(message: str = "Validation failed", status: int = 400) -> TransportResponse:
    """Application-level failure response"""
    return TransportResponse(ok=False, status=status, body={"error": message})


def network_down(endpoint: str = "/", method: str = "GET") -> NetworkUnavailable:
    """Network-level failure raised by a transport"""
    return NetworkUnavailable("Connection refused", endpoint=endpoint, method=method)


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def store(tmp_path):
    """Initialized LocalStore on a temporary database"""
    local_store = LocalStore(tmp_path / "offline.db")
    local_store.initialize()
    yield local_store
    local_store.close()


@pytest.fixture
def reachability():
    """Manually driven reachability, initially online"""
    return ManualReachability(connected=True)


@pytest.fixture
def transport():
    """Mock transport that accepts everything by default"""
    mock_transport = MagicMock(spec=BaseTransport)
    mock_transport.call.return_value = ok([])
    return mock_transport


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at the temporary database"""
    return OfflineSettings(db_path=tmp_path / "offline.db")


@pytest.fixture
def coordinator(store, transport, reachability, settings):
    """SyncCoordinator wired to the fixtures above"""
    sync_coordinator = SyncCoordinator(store, transport, reachability, settings)
    yield sync_coordinator
    sync_coordinator.close()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run in an empty working directory with no FINANCE_* variables set"""
    for name in (
        "FINANCE_OFFLINE_CONFIG",
        "FINANCE_API_URL",
        "FINANCE_API_KEY",
        "FINANCE_OFFLINE_DB",
        "FINANCE_REQUEST_TIMEOUT",
        "FINANCE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
