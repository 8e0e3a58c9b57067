# =============================================================================
# finance_core/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
Reachability observers consumed by the SyncCoordinator.

- ReachabilityObserver: the interface (is_connected + subscribe/unsubscribe)
- ManualReachability: state driven by the host application or by tests
- ConnectionManager: TCP probes of public DNS hosts and the API host, with an
  optional background monitoring thread

Subscribers are called with the new connectivity flag, only when it changes.
"""

from __future__ import annotations
import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse
import logging

from finance_core.config import OfflineSettings

logger = logging.getLogger(__name__)

ReachabilityCallback = Callable[[bool], None]
Probe = Callable[[str, int, float], bool]


class ReachabilityObserver(ABC):
    """Source of online/offline transitions."""

    def __init__(self):
        self._callbacks: List[ReachabilityCallback] = []
        self._callbacks_lock = threading.Lock()

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the API is currently considered reachable."""

    def subscribe(self, callback: ReachabilityCallback) -> None:
        """Register a callback for connectivity changes."""
        with self._callbacks_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unsubscribe(self, callback: ReachabilityCallback) -> None:
        """Remove a registered callback."""
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _notify(self, connected: bool) -> None:
        """Notify all registered callbacks of a connectivity change."""
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(connected)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}", exc_info=True)


class ManualReachability(ReachabilityObserver):
    """Reachability set explicitly by the host application."""

    def __init__(self, connected: bool = True):
        super().__init__()
        self._connected = connected
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> None:
        with self._lock:
            changed = connected != self._connected
            self._connected = connected
        if changed:
            logger.info(f"Reachability changed: {'online' if connected else 'offline'}")
            self._notify(connected)

    def set_online(self) -> None:
        self.set_connected(True)

    def set_offline(self) -> None:
        self.set_connected(False)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Internet and API host reachable
    OFFLINE = "offline"         # No connectivity
    DEGRADED = "degraded"       # Internet OK but API host unreachable
    CHECKING = "checking"       # First check in progress
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    internet_available: bool = False
    api_available: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


def tcp_probe(host: str, port: int, timeout: float) -> bool:
    """Return True if a TCP connection to host:port succeeds within timeout."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class ConnectionManager(ReachabilityObserver):
    """
    Probe-based reachability observer.

    Usage:
        manager = ConnectionManager(settings)
        manager.initialize()            # first check + background monitoring
        if manager.is_connected:
            ...
    """

    INTERNET_HOSTS: Tuple[Tuple[str, int], ...] = (
        ("8.8.8.8", 53),        # Google DNS
        ("1.1.1.1", 53),        # Cloudflare DNS
        ("208.67.222.222", 53), # OpenDNS
    )

    def __init__(
        self,
        settings: Optional[OfflineSettings] = None,
        probe: Optional[Probe] = None,
    ):
        super().__init__()
        self.settings = settings or OfflineSettings()
        self._probe = probe or tcp_probe
        self._state = ConnectionState()
        self._state_lock = threading.Lock()
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()
        self._initialized = False

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        """Get current status."""
        return self._state.status

    @property
    def is_connected(self) -> bool:
        """Check if we have full connectivity."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status == ConnectionStatus.OFFLINE

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Run the first check and optionally start background monitoring.

        Args:
            start_monitoring: Whether to start background monitoring
        """
        if self._initialized:
            return

        self.check_connection()

        if start_monitoring:
            self.start_monitoring()

        self._initialized = True
        logger.info(f"ConnectionManager initialized. Status: {self._state.status.value}")

    def _api_endpoint(self) -> Optional[Tuple[str, int]]:
        parsed = urlparse(self.settings.api_base_url)
        if not parsed.hostname:
            return None
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return parsed.hostname, port

    def _check_internet(self) -> bool:
        timeout = self.settings.connection_timeout
        return any(self._probe(host, port, timeout) for host, port in self.INTERNET_HOSTS)

    def _check_api(self) -> bool:
        endpoint = self._api_endpoint()
        if endpoint is None:
            self._state.error_message = f"No host in API URL: {self.settings.api_base_url}"
            return False
        host, port = endpoint
        return self._probe(host, port, self.settings.connection_timeout)

    def check_connection(self) -> ConnectionState:
        """
        Perform a connection check and update state.

        Local API hosts (localhost, private LAN servers) are probed even when
        the public internet check fails.

        Returns:
            Updated ConnectionState
        """
        with self._state_lock:
            was_connected = self.is_connected
            old_status = self._state.status
            if old_status == ConnectionStatus.UNKNOWN:
                self._state.status = ConnectionStatus.CHECKING

            internet_ok = self._check_internet()
            api_ok = self._check_api()

            self._state.last_check = datetime.now()
            self._state.internet_available = internet_ok
            self._state.api_available = api_ok

            if api_ok:
                self._state.status = ConnectionStatus.ONLINE
                self._state.last_online = self._state.last_check
                self._state.consecutive_failures = 0
                self._state.error_message = None
            elif internet_ok:
                self._state.status = ConnectionStatus.DEGRADED
                self._state.consecutive_failures += 1
            else:
                self._state.status = ConnectionStatus.OFFLINE
                self._state.consecutive_failures += 1

            new_status = self._state.status
            now_connected = self.is_connected

        if old_status != new_status:
            logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
        if was_connected != now_connected:
            self._notify(now_connected)

        return self._state

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            interval = (
                self.settings.check_interval_online
                if self.is_connected
                else self.settings.check_interval_offline
            )

            if self._stop_monitoring.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}", exc_info=True)

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        with self._state_lock:
            was_connected = self.is_connected
            self._state.status = ConnectionStatus.OFFLINE
            self._state.internet_available = False
            self._state.api_available = False
        logger.info("Forced offline mode")
        if was_connected:
            self._notify(False)

    def force_check(self) -> ConnectionState:
        """Force an immediate connection check."""
        return self.check_connection()

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_connected,
            "internet": self._state.internet_available,
            "api": self._state.api_available,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
