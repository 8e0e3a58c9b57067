# =============================================================================
# finance_core/offline/models.py
# Records and Result Containers for the Offline Layer
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from finance_core.errors import ApplicationError

QUEUED_MESSAGE = "Saved offline, will sync when online"


class CoordinatorState(Enum):
    """Sync coordinator states."""
    ONLINE_IDLE = "online_idle"
    ONLINE_SYNCING = "online_syncing"
    OFFLINE = "offline"


@dataclass(frozen=True)
class PendingMutation:
    """A write deferred until connectivity returns."""
    id: int
    endpoint: str
    method: str
    payload: Any
    enqueued_at: int  # epoch milliseconds


@dataclass(frozen=True)
class FailedMutation:
    """A queued write the server rejected during replay."""
    id: int
    endpoint: str
    method: str
    payload: Any
    enqueued_at: int
    status: Optional[int]
    error: Optional[str]
    failed_at: int


@dataclass
class ReadResult:
    """Outcome of SyncCoordinator.read."""
    data: Any
    from_cache: bool
    error: Optional[ApplicationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class WriteResult:
    """
    Outcome of SyncCoordinator.write.

    Three shapes: applied (success, not queued), queued for later sync
    (success, queued), rejected by the server (not success, with error).
    """
    success: bool
    queued: bool = False
    data: Optional[Any] = None
    error: Optional[str] = None
    status: Optional[int] = None
    message: Optional[str] = None
    mutation_id: Optional[int] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, status: Optional[int] = None) -> WriteResult:
        """Create a result for a write the server accepted"""
        return cls(success=True, data=data, status=status)

    @classmethod
    def queued_offline(cls, mutation_id: int) -> WriteResult:
        """Create a result for a write stored in the pending queue"""
        return cls(success=True, queued=True, message=QUEUED_MESSAGE, mutation_id=mutation_id)

    @classmethod
    def rejected(cls, error: ApplicationError) -> WriteResult:
        """Create a result for a write the server refused"""
        return cls(
            success=False,
            error=error.message,
            status=error.status,
            data=error.body,
        )


@dataclass(frozen=True)
class SyncSummary:
    """Counts from one replay run."""
    synced: int = 0
    failed: int = 0
    skipped: bool = False
    remaining: int = 0

    def to_dict(self) -> dict:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "skipped": self.skipped,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class CoordinatorStatus:
    """Snapshot handed to status listeners."""
    state: CoordinatorState
    pending_count: int
    last_summary: Optional[SyncSummary] = None

    @property
    def is_online(self) -> bool:
        return self.state != CoordinatorState.OFFLINE

    @property
    def is_syncing(self) -> bool:
        return self.state == CoordinatorState.ONLINE_SYNCING
