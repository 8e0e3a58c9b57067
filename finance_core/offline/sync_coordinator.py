# =============================================================================
# finance_core/offline/sync_coordinator.py
# Connectivity-Aware Reads, Queued Writes and Replay
# =============================================================================
"""
SyncCoordinator - the only component application code talks to.

- Reads go to the API when online and refresh the local cache; on network
  failure or while offline they are served from the cache.
- Writes go to the API when online; on network failure or while offline they
  are queued in the local store and reported as queued.
- When connectivity returns with a non-empty queue, the queue is replayed in
  FIFO order. A network failure stops the run and keeps the remaining
  mutations; a server rejection drops the mutation into the failed record.

Usage:
    coordinator = SyncCoordinator(store, transport, reachability)
    result = coordinator.read("/daily-customers")
    outcome = coordinator.write("/daily-loans", "POST", {"amount": 500})
    if outcome.queued:
        print(outcome.message)
"""

from __future__ import annotations
import threading
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple
import logging

from finance_core.api import APIConfig, BaseTransport, HTTPTransport
from finance_core.config import OfflineSettings, load_settings
from finance_core.errors import (
    ApplicationError,
    NetworkUnavailable,
    StorageUnavailable,
    handle_error,
)
from finance_core.logging import LogContext
from finance_core.offline.connection_manager import ConnectionManager, ReachabilityObserver
from finance_core.offline.local_store import LocalStore
from finance_core.offline.models import (
    CoordinatorState,
    CoordinatorStatus,
    PendingMutation,
    ReadResult,
    SyncSummary,
    WriteResult,
)
from finance_core.offline.resource_keys import normalize_endpoint, resource_key

logger = logging.getLogger(__name__)

WRITE_METHODS = ("POST", "PUT", "PATCH", "DELETE")

# requests, socket and timeout errors all derive from OSError
NETWORK_ERRORS = (NetworkUnavailable, OSError)

StatusCallback = Callable[[CoordinatorStatus], None]


class _ReplayOutcome(Enum):
    SYNCED = "synced"
    REJECTED = "rejected"
    BLOCKED = "blocked"


def _empty() -> list:
    return []


class SyncCoordinator:
    """
    Mediates every data access through connectivity awareness.

    State is OFFLINE whenever the reachability observer reports disconnected,
    otherwise ONLINE_SYNCING while a replay run is active and ONLINE_IDLE
    otherwise. The connectivity flag and the syncing flag are guarded by one
    lock; listeners are called after the lock is released.

    With background_sync=True the replay started by a reconnect runs on its
    own thread, so the observer that reported the reconnect (for example the
    ConnectionManager monitor thread) keeps checking while the queue drains.
    Otherwise it runs on the thread that delivered the event.
    """

    def __init__(
        self,
        store: LocalStore,
        transport: BaseTransport,
        reachability: ReachabilityObserver,
        settings: Optional[OfflineSettings] = None,
        background_sync: bool = False,
    ):
        self.store = store
        self.transport = transport
        self.reachability = reachability
        self.settings = settings or OfflineSettings()
        self.background_sync = background_sync

        self._lock = threading.RLock()
        self._online = bool(reachability.is_connected)
        self._syncing = False
        self._resync_requested = False
        self._last_summary: Optional[SyncSummary] = None
        self._callbacks: List[StatusCallback] = []
        self._sync_thread: Optional[threading.Thread] = None

        reachability.subscribe(self._on_reachability_change)
        logger.info(f"SyncCoordinator started in state {self.state.value}")

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================

    @property
    def state(self) -> CoordinatorState:
        with self._lock:
            if not self._online:
                return CoordinatorState.OFFLINE
            if self._syncing:
                return CoordinatorState.ONLINE_SYNCING
            return CoordinatorState.ONLINE_IDLE

    @property
    def last_summary(self) -> Optional[SyncSummary]:
        return self._last_summary

    def is_online(self) -> bool:
        return self._online

    def is_syncing(self) -> bool:
        return self._syncing

    def pending_count(self) -> int:
        """Number of queued mutations (reads the store)."""
        return self.store.count_pending_mutations()

    def has_pending(self) -> bool:
        return self.store.has_pending_mutations()

    def status(self) -> CoordinatorStatus:
        """Snapshot of state, pending count and last sync summary."""
        return CoordinatorStatus(
            state=self.state,
            pending_count=self._safe_pending_count(),
            last_summary=self._last_summary,
        )

    def register_callback(self, callback: StatusCallback) -> None:
        """Register a callback for state, queue and sync changes."""
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unregister_callback(self, callback: StatusCallback) -> None:
        """Remove a registered callback."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        if not callbacks:
            return

        snapshot = self.status()
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Error in status callback: {e}", exc_info=True)

    def _safe_pending_count(self) -> int:
        try:
            return self.store.count_pending_mutations()
        except StorageUnavailable as e:
            logger.error(f"Cannot count pending mutations: {e}")
            return 0

    def _safe_has_pending(self) -> bool:
        try:
            return self.has_pending()
        except StorageUnavailable as e:
            logger.error(f"Cannot check pending mutations: {e}")
            return False

    def resource_key(self, endpoint: str) -> str:
        """Cache key for an endpoint, using the configured resource prefixes."""
        return resource_key(endpoint, self.settings.resource_prefixes)

    # =========================================================================
    # CONNECTIVITY TRANSITIONS
    # =========================================================================

    def _on_reachability_change(self, connected: bool) -> None:
        """Handle connection status changes."""
        with self._lock:
            if connected == self._online:
                return
            self._online = connected
            syncing = self._syncing
            if connected and syncing:
                self._resync_requested = True

        logger.info(f"Connection {'restored' if connected else 'lost'}; state is now {self.state.value}")
        self._notify_callbacks()

        if connected and not syncing and self._safe_has_pending():
            logger.info("Connection restored with queued mutations, triggering sync")
            if self.background_sync:
                self._start_sync_thread()
            else:
                self.trigger_sync()

    def _start_sync_thread(self) -> None:
        thread = threading.Thread(target=self.trigger_sync, daemon=True, name="SyncReplay")
        with self._lock:
            self._sync_thread = thread
        thread.start()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the latest background replay finishes.

        Returns:
            True if no background replay is running anymore
        """
        with self._lock:
            thread = self._sync_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # =========================================================================
    # READS
    # =========================================================================

    def _cached_or_empty(self, key: str) -> Any:
        try:
            return self.store.get_cached(key, default=_empty())
        except StorageUnavailable as e:
            logger.error(f"Cache unavailable for {key}, returning empty data: {e}")
            return _empty()

    def read(self, endpoint: str) -> ReadResult:
        """
        Fetch a resource, falling back to the local cache.

        Args:
            endpoint: API endpoint, e.g. "/daily-customers"

        Returns:
            ReadResult; from_cache is True when the data came from the store.
            Network failures never raise. A server rejection is returned in
            ReadResult.error with empty data and is not cached.

        Raises:
            ValueError: If endpoint is not a non-empty string
        """
        key = self.resource_key(endpoint)

        if not self.is_online():
            logger.debug(f"Offline, serving {key} from cache")
            return ReadResult(data=self._cached_or_empty(key), from_cache=True)

        try:
            response = self.transport.call(endpoint, "GET")
        except NETWORK_ERRORS as e:
            logger.warning(f"Network error on GET {endpoint}, falling back to cache: {e}")
            return ReadResult(data=self._cached_or_empty(key), from_cache=True)

        if not response.ok:
            error = ApplicationError(
                response.error_message,
                status=response.status,
                body=response.body,
                endpoint=endpoint,
            )
            logger.warning(f"GET {endpoint} rejected: {error.message} (HTTP {response.status})")
            return ReadResult(data=_empty(), from_cache=False, error=error)

        try:
            self.store.cache_resource(key, response.body, collection=key != normalize_endpoint(endpoint))
        except StorageUnavailable as e:
            logger.error(f"Could not cache {key}: {e}")

        return ReadResult(data=response.body, from_cache=False)

    # =========================================================================
    # WRITES
    # =========================================================================

    def write(self, endpoint: str, method: str, payload: Any = None) -> WriteResult:
        """
        Apply a mutation, queueing it when the server cannot be reached.

        Args:
            endpoint: API endpoint
            method: POST, PUT, PATCH or DELETE
            payload: JSON-compatible request body

        Returns:
            WriteResult: applied, queued (success with queued=True) or
            rejected (success=False with the server's message)

        Raises:
            ValueError: Malformed endpoint or unsupported method
            StorageUnavailable: The mutation had to be queued and the store
                could not persist it
        """
        normalize_endpoint(endpoint)
        method = (method or "").upper()
        if method not in WRITE_METHODS:
            raise ValueError(f"Unsupported write method: {method!r}")

        if not self.is_online():
            return self._enqueue(endpoint, method, payload)

        try:
            response = self.transport.call(endpoint, method, payload)
        except NETWORK_ERRORS as e:
            logger.warning(f"Network error on {method} {endpoint}, queueing: {e}")
            return self._enqueue(endpoint, method, payload)

        if response.ok:
            return WriteResult.ok(response.body, status=response.status)

        error = ApplicationError(
            response.error_message,
            status=response.status,
            body=response.body,
            endpoint=endpoint,
        )
        logger.warning(f"{method} {endpoint} rejected: {error.message} (HTTP {response.status})")
        return WriteResult.rejected(error)

    def _enqueue(self, endpoint: str, method: str, payload: Any) -> WriteResult:
        mutation_id = self.store.enqueue_mutation(endpoint, method, payload)
        logger.info(f"Saved {method} {endpoint} offline as mutation {mutation_id}")
        self._notify_callbacks()
        return WriteResult.queued_offline(mutation_id)

    # =========================================================================
    # REPLAY
    # =========================================================================

    def trigger_sync(self) -> SyncSummary:
        """
        Replay queued mutations in FIFO order.

        Never raises. Returns immediately with an empty summary when offline,
        and with skipped=True when a run is already in progress. Mutations
        queued while the run is active wait for the next run.
        """
        with self._lock:
            if not self._online:
                logger.debug("Cannot sync: offline")
                return SyncSummary(remaining=self._safe_pending_count())
            if self._syncing:
                logger.debug("Sync already in progress")
                return SyncSummary(skipped=True)
            self._syncing = True
            self._resync_requested = False

        self._notify_callbacks()

        synced = failed = 0
        try:
            synced, failed = self._replay_pending()
        except Exception as e:
            handle_error(e, context="Replaying queued mutations")
        finally:
            with self._lock:
                self._syncing = False
                rerun = self._resync_requested and self._online
                self._resync_requested = False

        remaining = self._safe_pending_count()
        summary = SyncSummary(synced=synced, failed=failed, remaining=remaining)
        self._last_summary = summary
        logger.info(f"Sync complete: {synced} synced, {failed} failed, {remaining} remaining")
        self._notify_callbacks()

        if rerun and remaining:
            follow_up = self.trigger_sync()
            summary = SyncSummary(
                synced=synced + follow_up.synced,
                failed=failed + follow_up.failed,
                remaining=follow_up.remaining,
            )
            self._last_summary = summary

        return summary

    def _replay_pending(self) -> Tuple[int, int]:
        try:
            pending = self.store.list_pending_mutations()
        except StorageUnavailable as e:
            handle_error(e, context="Listing pending mutations")
            return 0, 0

        if not pending:
            return 0, 0

        synced = failed = 0
        with LogContext(logger, "Replaying queued mutations", pending=len(pending)) as run:
            for mutation in pending:
                if not self.is_online():
                    logger.info("Connection lost during sync; remaining mutations stay queued")
                    break

                outcome = self._replay_one(mutation)
                if outcome is _ReplayOutcome.SYNCED:
                    synced += 1
                elif outcome is _ReplayOutcome.REJECTED:
                    failed += 1
                else:
                    break
                run.record(synced=synced, failed=failed)

        return synced, failed

    def _replay_one(self, mutation: PendingMutation) -> _ReplayOutcome:
        try:
            response = self.transport.call(mutation.endpoint, mutation.method, mutation.payload)
        except NETWORK_ERRORS as e:
            logger.warning(f"Network error replaying mutation {mutation.id}, stopping: {e}")
            return _ReplayOutcome.BLOCKED
        except Exception as e:
            handle_error(e, context=f"Replaying mutation {mutation.id}")
            return _ReplayOutcome.BLOCKED

        try:
            if response.ok:
                self.store.remove_pending_mutation(mutation.id)
                return _ReplayOutcome.SYNCED

            self.store.record_failed_mutation(mutation, response.status, response.error_message)
        except StorageUnavailable as e:
            handle_error(e, context=f"Updating queue after mutation {mutation.id}")
            return _ReplayOutcome.BLOCKED

        logger.warning(
            f"Mutation {mutation.id} ({mutation.method} {mutation.endpoint}) rejected "
            f"with HTTP {response.status}: {response.error_message}; dropped from queue"
        )
        return _ReplayOutcome.REJECTED

    def close(self) -> None:
        """Stop listening to reachability changes."""
        self.reachability.unsubscribe(self._on_reachability_change)


def build_sync_coordinator(
    settings: Optional[OfflineSettings] = None,
    start_monitoring: bool = True,
) -> SyncCoordinator:
    """
    Wire a coordinator from settings: SQLite store, HTTP transport and a
    probe-based ConnectionManager.

    Raises:
        StorageUnavailable: If the local store cannot be opened
    """
    settings = settings or load_settings()

    store = LocalStore(settings.db_path)
    store.initialize()

    transport = HTTPTransport(APIConfig.from_settings(settings))

    manager = ConnectionManager(settings)
    manager.initialize(start_monitoring=start_monitoring)

    return SyncCoordinator(store, transport, manager, settings, background_sync=True)


# Singleton accessor
_sync_coordinator: Optional[SyncCoordinator] = None
_sync_coordinator_lock = threading.Lock()


def get_sync_coordinator() -> SyncCoordinator:
    """Get the global SyncCoordinator instance."""
    global _sync_coordinator
    if _sync_coordinator is None:
        with _sync_coordinator_lock:
            if _sync_coordinator is None:
                _sync_coordinator = build_sync_coordinator()
    return _sync_coordinator
