# =============================================================================
# tests/integration/test_offline_roundtrip.py
# Integration Tests - Offline Session Through Reconnect and Replay
# =============================================================================
"""
Drives a real LocalStore and the SyncCoordinator with an in-memory fake
server standing in for the REST API. Connectivity is toggled through
ManualReachability.
"""

import itertools

import pytest

from finance_core.api import BaseTransport, TransportResponse
from finance_core.config import OfflineSettings
from finance_core.errors import NetworkUnavailable
from finance_core.offline import (
    CoordinatorState,
    LocalStore,
    ManualReachability,
    SyncCoordinator,
)


class FakeFinanceServer(BaseTransport):
    """Minimal loan-tracking API keeping records in dicts"""

    def __init__(self):
        self.up = True
        self.requests = []
        self.records = {"/customers": {}, "/daily-loans": {}}
        self._ids = itertools.count(1)

    def call(self, endpoint, method="GET", payload=None):
        self.requests.append((endpoint, method, payload))
        if not self.up:
            raise NetworkUnavailable("Connection refused", endpoint=endpoint, method=method)

        collection = self.records.get(endpoint.split("?")[0])
        if collection is None:
            return TransportResponse(ok=False, status=404, body={"error": "Not found"})

        if method == "GET":
            return TransportResponse(ok=True, status=200, body=list(collection.values()))

        if method == "POST":
            if endpoint == "/customers" and any(c["phone"] == payload["phone"] for c in collection.values()):
                return TransportResponse(ok=False, status=409, body={"error": "Phone already registered"})
            record = dict(payload, id=next(self._ids))
            collection[record["id"]] = record
            return TransportResponse(ok=True, status=201, body=record)

        return TransportResponse(ok=False, status=405, body={"error": "Method not allowed"})


@pytest.fixture
def server():
    return FakeFinanceServer()


@pytest.fixture
def session(tmp_path, server):
    store = LocalStore(tmp_path / "offline.db")
    store.initialize()
    reachability = ManualReachability(connected=True)
    coordinator = SyncCoordinator(store, server, reachability, OfflineSettings(db_path=store.db_path))
    yield coordinator, reachability
    coordinator.close()
    store.close()


class TestOfflineRoundTrip:
    """Full offline, reconnect, replay cycle"""

    def test_collection_cached_while_online_is_served_offline(self, session, server):
        coordinator, reachability = session
        coordinator.write("/customers", "POST", {"name": "A", "phone": "9000000001"})

        fresh = coordinator.read("/customers")
        reachability.set_offline()
        request_count = len(server.requests)
        cached = coordinator.read("/customers")

        assert fresh.from_cache is False
        assert cached.from_cache is True
        assert cached.data == fresh.data
        assert len(server.requests) == request_count

    def test_offline_writes_replay_in_order_on_reconnect(self, session, server):
        coordinator, reachability = session
        reachability.set_offline()

        results = [
            coordinator.write("/customers", "POST", {"name": "A", "phone": "9000000001"}),
            coordinator.write("/daily-loans", "POST", {"customer_id": 1, "amount": 500}),
            coordinator.write("/customers", "POST", {"name": "B", "phone": "9000000002"}),
        ]

        assert all(r.queued for r in results)
        assert coordinator.pending_count() == 3
        assert server.requests == []

        reachability.set_online()

        assert coordinator.state == CoordinatorState.ONLINE_IDLE
        assert coordinator.pending_count() == 0
        assert [(e, p.get("name") or p.get("amount")) for e, _, p in server.requests] == [
            ("/customers", "A"),
            ("/daily-loans", 500),
            ("/customers", "B"),
        ]
        assert coordinator.last_summary.synced == 3

    def test_server_outage_during_replay_keeps_remaining_queue(self, session, server):
        coordinator, reachability = session
        reachability.set_offline()
        coordinator.write("/customers", "POST", {"name": "A", "phone": "1"})
        coordinator.write("/customers", "POST", {"name": "B", "phone": "2"})

        server.up = False
        reachability.set_online()

        assert coordinator.pending_count() == 2
        assert coordinator.last_summary.synced == 0

        server.up = True
        summary = coordinator.trigger_sync()

        assert (summary.synced, summary.remaining) == (2, 0)
        assert len(server.records["/customers"]) == 2

    def test_rejected_mutation_is_recorded_not_retried(self, session, server):
        coordinator, reachability = session
        coordinator.write("/customers", "POST", {"name": "A", "phone": "9000000001"})
        reachability.set_offline()
        coordinator.write("/customers", "POST", {"name": "A again", "phone": "9000000001"})
        coordinator.write("/daily-loans", "POST", {"customer_id": 1, "amount": 750})

        reachability.set_online()

        summary = coordinator.last_summary
        assert (summary.synced, summary.failed, summary.remaining) == (1, 1, 0)
        failed = coordinator.store.list_failed_mutations()
        assert len(failed) == 1
        assert failed[0].status == 409
        assert failed[0].payload == {"name": "A again", "phone": "9000000001"}

        request_count = len(server.requests)
        coordinator.trigger_sync()
        assert len(server.requests) == request_count

    def test_network_failure_while_online_queues_write(self, session, server):
        coordinator, _ = session
        server.up = False

        result = coordinator.write("/daily-loans", "POST", {"customer_id": 1, "amount": 200})

        assert result.queued is True
        assert coordinator.is_online() is True
        assert coordinator.pending_count() == 1
