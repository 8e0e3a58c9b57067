# =============================================================================
# tests/unit/test_connection_manager.py
# Unit Tests for Reachability Observers
# =============================================================================

from unittest.mock import MagicMock

import pytest

from finance_core.config import OfflineSettings
from finance_core.offline import ConnectionManager, ConnectionStatus, ManualReachability


class FakeProbe:
    """Probe that answers from a set of reachable hosts"""

    def __init__(self, reachable=()):
        self.reachable = set(reachable)
        self.calls = []

    def __call__(self, host, port, timeout):
        self.calls.append((host, port, timeout))
        return host in self.reachable


@pytest.fixture
def lan_settings():
    return OfflineSettings(api_base_url="http://192.168.1.20:5000/api", connection_timeout=0.5)


class TestManualReachability:
    """Test the host-driven observer"""

    def test_initial_state(self):
        assert ManualReachability().is_connected is True
        assert ManualReachability(connected=False).is_connected is False

    def test_notifies_on_change_only(self):
        observer = ManualReachability(connected=True)
        listener = MagicMock()
        observer.subscribe(listener)

        observer.set_online()
        observer.set_offline()
        observer.set_offline()
        observer.set_online()

        assert [c.args[0] for c in listener.call_args_list] == [False, True]

    def test_subscribe_twice_registers_once(self):
        observer = ManualReachability()
        listener = MagicMock()
        observer.subscribe(listener)
        observer.subscribe(listener)

        observer.set_offline()

        listener.assert_called_once_with(False)

    def test_unsubscribe(self):
        observer = ManualReachability()
        listener = MagicMock()
        observer.subscribe(listener)
        observer.unsubscribe(listener)

        observer.set_offline()

        listener.assert_not_called()

    def test_listener_errors_are_contained(self):
        observer = ManualReachability()
        observer.subscribe(MagicMock(side_effect=RuntimeError("bad listener")))
        healthy = MagicMock()
        observer.subscribe(healthy)

        observer.set_offline()

        healthy.assert_called_once_with(False)


class TestConnectionManager:
    """Test probe-based status detection"""

    def test_initial_status_unknown_and_disconnected(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe())

        assert manager.status == ConnectionStatus.UNKNOWN
        assert manager.is_connected is False

    def test_api_reachable_is_online(self, lan_settings):
        probe = FakeProbe(reachable={"8.8.8.8", "192.168.1.20"})
        manager = ConnectionManager(lan_settings, probe=probe)

        state = manager.check_connection()

        assert state.status == ConnectionStatus.ONLINE
        assert manager.is_connected is True
        assert ("192.168.1.20", 5000, 0.5) in probe.calls

    def test_lan_api_without_internet_is_online(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe(reachable={"192.168.1.20"}))

        manager.check_connection()

        assert manager.status == ConnectionStatus.ONLINE
        assert manager.state.internet_available is False

    def test_internet_without_api_is_degraded(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe(reachable={"1.1.1.1"}))

        manager.check_connection()

        assert manager.status == ConnectionStatus.DEGRADED
        assert manager.is_connected is False

    def test_nothing_reachable_is_offline(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe())

        manager.check_connection()
        manager.check_connection()

        assert manager.is_offline
        assert manager.state.consecutive_failures == 2

    def test_default_ports_from_scheme(self):
        probe = FakeProbe()
        ConnectionManager(OfflineSettings(api_base_url="https://finance.example.com/api"), probe=probe).check_connection()
        ConnectionManager(OfflineSettings(api_base_url="http://finance.example.com/api"), probe=probe).check_connection()

        api_calls = [c for c in probe.calls if c[0] == "finance.example.com"]
        assert [port for _, port, _ in api_calls] == [443, 80]

    def test_subscribers_notified_on_transitions(self, lan_settings):
        probe = FakeProbe(reachable={"192.168.1.20"})
        manager = ConnectionManager(lan_settings, probe=probe)
        listener = MagicMock()
        manager.subscribe(listener)

        manager.check_connection()
        manager.check_connection()
        probe.reachable.clear()
        manager.check_connection()

        assert [c.args[0] for c in listener.call_args_list] == [True, False]

    def test_force_offline(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe(reachable={"192.168.1.20"}))
        manager.check_connection()
        listener = MagicMock()
        manager.subscribe(listener)

        manager.force_offline()

        assert manager.status == ConnectionStatus.OFFLINE
        listener.assert_called_once_with(False)

    def test_initialize_without_monitoring(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe(reachable={"192.168.1.20"}))

        manager.initialize(start_monitoring=False)

        assert manager.is_connected is True
        assert manager._monitor_thread is None

    def test_monitoring_thread_starts_and_stops(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe())

        manager.start_monitoring()
        assert manager._monitor_thread.is_alive()

        manager.stop_monitoring()
        assert not manager._monitor_thread.is_alive()

    def test_status_display(self, lan_settings):
        manager = ConnectionManager(lan_settings, probe=FakeProbe(reachable={"192.168.1.20"}))
        manager.check_connection()

        display = manager.get_status_display()

        assert display["status"] == "online"
        assert display["is_online"] is True
        assert display["api"] is True
        assert display["last_check"] is not None
