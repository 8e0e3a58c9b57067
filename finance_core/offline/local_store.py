# =============================================================================
# finance_core/offline/local_store.py
# Local SQLite Store for Cached Resources and Pending Mutations
# =============================================================================
"""
LocalStore - SQLite-based persistence for offline operation.

Features:
- Per-resource-type cache of the last successful fetch
- Durable FIFO queue of mutations made while disconnected
- Record of queued mutations the server rejected during replay
- Thread-safe idempotent initialization
- DataFrame views (pandas) for report and inspection callers
"""

from __future__ import annotations
import json
import math
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional, Union
import logging

import numpy as np
import pandas as pd

from finance_core.errors import StorageUnavailable
from finance_core.offline.models import FailedMutation, PendingMutation

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_json_safe(value: Any) -> Any:
    """
    Convert a payload into plain JSON-compatible Python values.

    Handles numpy scalars and arrays, NaN / NaT, and datetime-like values so
    records built from DataFrames can be cached and queued directly.
    """
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, np.ndarray):
        return [to_json_safe(v) for v in value.tolist()]
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return None if math.isnan(value) else value
    if isinstance(value, (datetime, date, pd.Timestamp)):
        return value.isoformat()
    return value


def _is_empty(payload: Any) -> bool:
    return payload is None or (isinstance(payload, (list, tuple, dict, str)) and len(payload) == 0)


class LocalStore:
    """
    Local SQLite store backing the offline data layer.

    The store is the single owner of the persisted schema. Writes are
    committed before a call returns, so queued mutations survive a restart.
    """

    DEFAULT_DB_PATH = Path("local_data") / "offline.db"

    SCHEMA = {
        "cache": """
            CREATE TABLE IF NOT EXISTS cache (
                resource_key TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """,
        "pending_mutations": """
            CREATE TABLE IF NOT EXISTS pending_mutations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                endpoint TEXT NOT NULL,
                method TEXT NOT NULL,
                payload TEXT,
                enqueued_at INTEGER NOT NULL
            )
        """,
        "failed_mutations": """
            CREATE TABLE IF NOT EXISTS failed_mutations (
                id INTEGER PRIMARY KEY,
                endpoint TEXT NOT NULL,
                method TEXT NOT NULL,
                payload TEXT,
                enqueued_at INTEGER NOT NULL,
                status INTEGER,
                error TEXT,
                failed_at INTEGER NOT NULL
            )
        """,
    }

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """
        Initialize local store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._init_lock = threading.Lock()
        self._initialized = False

    # =========================================================================
    # CONNECTION MANAGEMENT
    # =========================================================================

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    timeout=30,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = FULL")
            except sqlite3.Error as e:
                raise StorageUnavailable(
                    f"Cannot open local store: {e}",
                    db_path=str(self.db_path),
                    operation="connect",
                )
            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Context manager for an immediate write transaction."""
        self.initialize()
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageUnavailable(
                f"Local store write failed: {e}",
                db_path=str(self.db_path),
                operation=operation,
            )
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    def _query(self, operation: str, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        """Run a read-only query."""
        self.initialize()
        try:
            return self._get_connection().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(
                f"Local store read failed: {e}",
                db_path=str(self.db_path),
                operation=operation,
            )

    def initialize(self) -> None:
        """
        Create the database file and schema if absent.

        Safe to call repeatedly and from several threads; only the first call
        does any work and the others wait for it.

        Raises:
            StorageUnavailable: If the database cannot be created or opened
        """
        if self._initialized:
            return

        with self._init_lock:
            if self._initialized:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageUnavailable(
                    f"Cannot create store directory: {e}",
                    db_path=str(self.db_path),
                    operation="initialize",
                )

            conn = self._get_connection()
            try:
                for table_name, schema in self.SCHEMA.items():
                    conn.execute(schema)
                    logger.debug(f"Created/verified table: {table_name}")
            except sqlite3.Error as e:
                raise StorageUnavailable(
                    f"Cannot create local store schema: {e}",
                    db_path=str(self.db_path),
                    operation="initialize",
                )
            self._initialized = True

        logger.info(f"Local store initialized at: {self.db_path}")

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.debug(f"Error closing connection: {e}")
            self._connections.clear()
        self._local = threading.local()

    # =========================================================================
    # RESOURCE CACHE
    # =========================================================================

    def cache_resource(self, resource_key: str, payload: Any, collection: bool = False) -> None:
        """
        Store the latest payload for a resource type.

        Lists replace the cached value. A dict carrying an "id" is upserted into
        the cached collection when the key names a collection (collection=True)
        or the cached value is already a list; otherwise it is stored as-is.
        Anything else replaces the cached value. Empty or missing payloads are
        ignored.
        """
        if _is_empty(payload):
            logger.debug(f"Nothing to cache for {resource_key}")
            return

        payload = to_json_safe(payload)

        with self.transaction("cache_resource") as conn:
            value = payload
            if isinstance(payload, dict) and payload.get("id") is not None:
                row = conn.execute(
                    "SELECT payload FROM cache WHERE resource_key = ?", (resource_key,)
                ).fetchone()
                current = self._decode_cached(resource_key, row["payload"]) if row else None
                if collection or isinstance(current, list):
                    value = self._upsert_by_id(current, payload)

            conn.execute(
                """
                INSERT OR REPLACE INTO cache (resource_key, payload, updated_at)
                VALUES (?, ?, ?)
                """,
                (resource_key, json.dumps(value), now_ms()),
            )

    @staticmethod
    def _upsert_by_id(current: Any, item: dict) -> list:
        collection = list(current) if isinstance(current, list) else []
        for i, existing in enumerate(collection):
            if isinstance(existing, dict) and existing.get("id") == item["id"]:
                collection[i] = item
                return collection
        collection.append(item)
        return collection

    @staticmethod
    def _decode_cached(resource_key: str, raw: str) -> Any:
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding unreadable cache entry {resource_key}: {e}")
            return None

    def get_cached(self, resource_key: str, default: Any = None) -> Any:
        """
        Get the most recently cached payload for a resource type.

        Args:
            resource_key: Resource-type key
            default: Value returned when nothing is cached

        Returns:
            Cached payload, or default
        """
        rows = self._query(
            "get_cached",
            "SELECT payload FROM cache WHERE resource_key = ?",
            (resource_key,),
        )
        if not rows:
            return default
        value = self._decode_cached(resource_key, rows[0]["payload"])
        return default if value is None else value

    def cached_keys(self) -> List[str]:
        """Resource-type keys that currently have a cached payload."""
        rows = self._query("cached_keys", "SELECT resource_key FROM cache ORDER BY resource_key")
        return [row["resource_key"] for row in rows]

    def clear_cache(self, resource_key: Optional[str] = None) -> int:
        """Drop one cached resource, or all of them. Pending mutations are untouched."""
        with self.transaction("clear_cache") as conn:
            if resource_key is None:
                cursor = conn.execute("DELETE FROM cache")
            else:
                cursor = conn.execute("DELETE FROM cache WHERE resource_key = ?", (resource_key,))
            return cursor.rowcount

    def cached_frame(self, resource_key: str) -> pd.DataFrame:
        """
        Load a cached collection into a pandas DataFrame.

        Args:
            resource_key: Resource-type key

        Returns:
            DataFrame with one row per cached record (empty if nothing cached)
        """
        payload = self.get_cached(resource_key)
        if payload is None:
            return pd.DataFrame()
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            return pd.DataFrame({"value": [payload]})
        return pd.DataFrame(payload)

    # =========================================================================
    # PENDING MUTATION QUEUE
    # =========================================================================

    def enqueue_mutation(self, endpoint: str, method: str, payload: Any = None) -> int:
        """
        Append a mutation to the queue.

        Args:
            endpoint: Target endpoint
            method: HTTP method
            payload: JSON-compatible request body

        Returns:
            Identifier of the queued mutation
        """
        body = None if payload is None else json.dumps(to_json_safe(payload))

        with self.transaction("enqueue_mutation") as conn:
            cursor = conn.execute(
                """
                INSERT INTO pending_mutations (endpoint, method, payload, enqueued_at)
                VALUES (?, ?, ?, ?)
                """,
                (endpoint, method.upper(), body, now_ms()),
            )
            mutation_id = cursor.lastrowid

        logger.debug(f"Queued {method.upper()} {endpoint} as mutation {mutation_id}")
        return mutation_id

    def list_pending_mutations(self) -> List[PendingMutation]:
        """
        All queued mutations, oldest first.

        A row whose payload can no longer be decoded is moved to the failed
        record with status None and left out of the result.
        """
        rows = self._query(
            "list_pending_mutations",
            "SELECT id, endpoint, method, payload, enqueued_at FROM pending_mutations ORDER BY id ASC",
        )

        pending = []
        for row in rows:
            mutation = PendingMutation(
                id=row["id"],
                endpoint=row["endpoint"],
                method=row["method"],
                payload=row["payload"],
                enqueued_at=row["enqueued_at"],
            )
            if row["payload"] is None:
                pending.append(mutation)
                continue
            try:
                pending.append(replace(mutation, payload=json.loads(row["payload"])))
            except json.JSONDecodeError as e:
                logger.error(f"Pending mutation {mutation.id} has an unreadable payload, moving it to failed: {e}")
                self.record_failed_mutation(mutation, None, f"Unreadable payload: {e}")
        return pending

    def remove_pending_mutation(self, mutation_id: int) -> None:
        """Delete a queued mutation; missing ids are ignored."""
        with self.transaction("remove_pending_mutation") as conn:
            conn.execute("DELETE FROM pending_mutations WHERE id = ?", (mutation_id,))

    def count_pending_mutations(self) -> int:
        """Number of queued mutations."""
        rows = self._query("count_pending_mutations", "SELECT COUNT(*) AS count FROM pending_mutations")
        return rows[0]["count"] if rows else 0

    def has_pending_mutations(self) -> bool:
        rows = self._query("has_pending_mutations", "SELECT 1 FROM pending_mutations LIMIT 1")
        return bool(rows)

    def pending_frame(self) -> pd.DataFrame:
        """Queue overview without payloads, oldest first."""
        rows = self._query(
            "pending_frame",
            "SELECT id, method, endpoint, enqueued_at FROM pending_mutations ORDER BY id ASC",
        )
        df = pd.DataFrame([dict(row) for row in rows], columns=["id", "method", "endpoint", "enqueued_at"])
        if not df.empty:
            df["enqueued_at"] = pd.to_datetime(df["enqueued_at"], unit="ms")
        return df

    # =========================================================================
    # REJECTED MUTATIONS
    # =========================================================================

    def record_failed_mutation(
        self,
        mutation: PendingMutation,
        status: Optional[int],
        error: Optional[str],
    ) -> None:
        """
        Move a queued mutation to the failed record.

        The insert into failed_mutations and the delete from the queue happen in
        one transaction.
        """
        body = None if mutation.payload is None else json.dumps(mutation.payload)

        with self.transaction("record_failed_mutation") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO failed_mutations
                    (id, endpoint, method, payload, enqueued_at, status, error, failed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    mutation.id,
                    mutation.endpoint,
                    mutation.method,
                    body,
                    mutation.enqueued_at,
                    status,
                    error,
                    now_ms(),
                ),
            )
            conn.execute("DELETE FROM pending_mutations WHERE id = ?", (mutation.id,))

    def list_failed_mutations(self) -> List[FailedMutation]:
        """Mutations dropped after a server rejection or an unreadable payload, in failure order."""
        rows = self._query(
            "list_failed_mutations",
            "SELECT * FROM failed_mutations ORDER BY failed_at ASC, id ASC",
        )
        failed = []
        for row in rows:
            try:
                payload = json.loads(row["payload"]) if row["payload"] is not None else None
            except json.JSONDecodeError:
                payload = row["payload"]
            failed.append(
                FailedMutation(
                    id=row["id"],
                    endpoint=row["endpoint"],
                    method=row["method"],
                    payload=payload,
                    enqueued_at=row["enqueued_at"],
                    status=row["status"],
                    error=row["error"],
                    failed_at=row["failed_at"],
                )
            )
        return failed

    def clear_failed_mutations(self) -> int:
        with self.transaction("clear_failed_mutations") as conn:
            return conn.execute("DELETE FROM failed_mutations").rowcount

