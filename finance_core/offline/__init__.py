# =============================================================================
# finance_core/offline/__init__.py
# Offline-First Data Access for the Loan-Tracking Client
# =============================================================================
"""
Offline-First Data Access Module

The client keeps working when the API cannot be reached: reads are served from
the last successful fetch, writes are queued and replayed once connectivity
returns.

Architecture:
------------
    ┌──────────────────────────────────────────────┐
    │               SyncCoordinator                │
    │       (Single API - apps use this only)      │
    └──────────────────────────────────────────────┘
          │                  │                 │
          ▼                  ▼                 ▼
    ┌────────────┐   ┌──────────────┐   ┌──────────────┐
    │ Reachability│   │  LocalStore  │   │  Transport   │
    │  Observer   │   │   (SQLite)   │   │ (REST / HTTP)│
    └────────────┘   └──────────────┘   └──────────────┘

Usage:
------
from finance_core.offline import get_sync_coordinator

coordinator = get_sync_coordinator()

result = coordinator.read("/daily-customers")     # live, or cached when offline
outcome = coordinator.write("/daily-payments", "POST", {"loan_id": 7, "amount": 500})

print(coordinator.is_online())
print(coordinator.pending_count())
"""

from finance_core.offline.connection_manager import (
    ReachabilityObserver,
    ManualReachability,
    ConnectionManager,
    ConnectionStatus,
    ConnectionState,
)

from finance_core.offline.local_store import LocalStore

from finance_core.offline.models import (
    CoordinatorState,
    CoordinatorStatus,
    FailedMutation,
    PendingMutation,
    ReadResult,
    SyncSummary,
    WriteResult,
)

from finance_core.offline.resource_keys import normalize_endpoint, resource_key

from finance_core.offline.sync_coordinator import (
    SyncCoordinator,
    build_sync_coordinator,
    get_sync_coordinator,
)

__all__ = [
    # Reachability
    "ReachabilityObserver",
    "ManualReachability",
    "ConnectionManager",
    "ConnectionStatus",
    "ConnectionState",
    # Local Store
    "LocalStore",
    # Records and results
    "CoordinatorState",
    "CoordinatorStatus",
    "FailedMutation",
    "PendingMutation",
    "ReadResult",
    "SyncSummary",
    "WriteResult",
    # Keys
    "normalize_endpoint",
    "resource_key",
    # Coordinator (Main API)
    "SyncCoordinator",
    "build_sync_coordinator",
    "get_sync_coordinator",
]
