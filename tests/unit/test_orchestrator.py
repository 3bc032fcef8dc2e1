"""
Unit tests for ConnectionOrchestrator.
The supplicant is mocked; lease machines are test doubles or real machines
over a fake DHCP client.
"""

import os
import subprocess
import threading
import time
from ipaddress import IPv4Address
from unittest.mock import MagicMock, patch

import pytest

from wifilink.dhcp.lease import DhcpClient, Lease
from wifilink.dhcp.state_machine import LeaseState, LeaseStateMachine
from wifilink.errors import (
    ConnectionTimeoutError,
    LeaseTransportError,
    ToolInvocationError,
    WifiError,
)
from wifilink.wifi.orchestrator import ConnectionOrchestrator
from wifilink.wifi.profile_store import ProfileStore


def machine_factory(behaviour):
    """Build a machine_factory whose machines run ``behaviour(on_bound)``."""
    def factory(interface, client, on_bound=None):
        machine = MagicMock()
        machine.run.side_effect = lambda: behaviour(on_bound)
        return machine
    return factory


def binds_immediately(on_bound):
    on_bound(Lease(IPv4Address("192.168.1.23"), 3600))


@pytest.fixture
def popen():
    with patch('wifilink.wifi.orchestrator.subprocess.Popen') as mock_popen:
        proc = MagicMock()
        proc.stdout = iter(["Successfully initialized wpa_supplicant\n"])
        proc.wait.return_value = 0
        mock_popen.return_value = proc
        yield mock_popen


@pytest.fixture
def store(tmp_path):
    return ProfileStore(str(tmp_path / "wifi.conf"))


class TestConnectionOrchestrator:
    """Test the lease/timeout race."""

    def test_success(self, popen, store):
        orchestrator = ConnectionOrchestrator(
            MagicMock(), store, machine_factory=machine_factory(binds_immediately))

        outcome = orchestrator.connect("wlan0", "network={}\n")

        assert outcome.succeeded
        assert outcome.error is None
        assert outcome.interface == "wlan0"

    def test_profile_written_and_supplicant_started(self, popen, store):
        orchestrator = ConnectionOrchestrator(
            MagicMock(), store, supplicant="wpa_supplicant",
            machine_factory=machine_factory(binds_immediately))

        orchestrator.connect("wlan0", 'network={\n\tssid="Cafe"\n}\n')

        assert store.profile_path.read_text() == 'network={\n\tssid="Cafe"\n}\n'
        assert os.stat(store.profile_path).st_mode & 0o777 == 0o600
        cmd = popen.call_args[0][0]
        assert cmd == ["wpa_supplicant", "-iwlan0", f"-c{store.profile_path}"]

    def test_lease_failure_propagates(self, popen, store):
        error = LeaseTransportError("wlan0", "no DHCPOFFERS")

        def fails(on_bound):
            raise error

        orchestrator = ConnectionOrchestrator(
            MagicMock(), store, machine_factory=machine_factory(fails))
        outcome = orchestrator.connect("wlan0", "network={}\n")

        assert not outcome.succeeded
        assert outcome.error is error

    def test_timeout_when_lease_never_binds(self, popen, store):
        release = threading.Event()
        orchestrator = ConnectionOrchestrator(
            MagicMock(), store, timeout_seconds=0.2,
            machine_factory=machine_factory(lambda on_bound: release.wait(5)))

        started = time.monotonic()
        outcome = orchestrator.connect("wlan0", "network={}\n")
        elapsed = time.monotonic() - started
        release.set()

        assert not outcome.succeeded
        assert isinstance(outcome.error, ConnectionTimeoutError)
        assert "wlan0" in str(outcome.error)
        assert 0.2 <= elapsed < 2.0

    def test_success_ignores_later_failure(self, popen, store):
        """A lease lost after connecting does not change the outcome."""
        def binds_then_fails(on_bound):
            binds_immediately(on_bound)
            raise LeaseTransportError("wlan0", "renewal failed")

        orchestrator = ConnectionOrchestrator(
            MagicMock(), store, machine_factory=machine_factory(binds_then_fails))
        outcome = orchestrator.connect("wlan0", "network={}\n")

        assert outcome.succeeded

    def test_missing_supplicant(self, store):
        with patch('wifilink.wifi.orchestrator.subprocess.Popen',
                   side_effect=FileNotFoundError("wpa_supplicant")):
            orchestrator = ConnectionOrchestrator(
                MagicMock(), store, machine_factory=machine_factory(binds_immediately))
            outcome = orchestrator.connect("wlan0", "network={}\n")

        assert not outcome.succeeded
        assert isinstance(outcome.error, ToolInvocationError)

    def test_supplicant_exit_is_not_failure(self, popen, store):
        popen.return_value.stdout = iter([])
        popen.return_value.wait.return_value = 255
        orchestrator = ConnectionOrchestrator(
            MagicMock(), store, machine_factory=machine_factory(binds_immediately))

        assert orchestrator.connect("wlan0", "network={}\n").succeeded

    def test_unexpected_machine_error_is_described(self, popen, store):
        def crashes(on_bound):
            raise ValueError("Octet 999 (> 255) not permitted in '999.1.1.1'")

        orchestrator = ConnectionOrchestrator(
            MagicMock(), store, machine_factory=machine_factory(crashes))
        outcome = orchestrator.connect("wlan0", "network={}\n")

        assert not outcome.succeeded
        assert isinstance(outcome.error, WifiError)
        assert "wlan0" in str(outcome.error)
        assert "Octet 999" in str(outcome.error)

    def test_machine_factory_failure_stops_supplicant(self, popen, store):
        popen.return_value.poll.return_value = None

        def factory(interface, client, on_bound=None):
            raise TypeError("bad factory")

        orchestrator = ConnectionOrchestrator(MagicMock(), store, machine_factory=factory)
        outcome = orchestrator.connect("wlan0", "network={}\n")

        assert not outcome.succeeded
        assert isinstance(outcome.error, WifiError)
        popen.return_value.terminate.assert_called_once()


class LongLeaseClient(DhcpClient):
    """Grants hour-long leases that never need renewing during a test."""

    def __init__(self):
        self.solicited = []

    def solicit(self, interface):
        self.solicited.append(interface)
        return Lease(IPv4Address("192.168.1.23"), 3600, IPv4Address("255.255.255.0"))

    def renew(self, interface, lease):
        raise AssertionError("hour-long leases are not renewed during a test")

    def handle_lease(self, interface, lease):
        pass


def supplicant_process():
    proc = MagicMock()
    proc.stdout = iter([])
    proc.poll.return_value = None
    proc.wait.return_value = 0
    return proc


class TestOneConnectionPerInterface:
    """A second connect on an interface replaces the first."""

    @pytest.fixture
    def machines(self):
        return []

    @pytest.fixture
    def orchestrator(self, store, machines):
        def factory(interface, client, on_bound=None):
            machine = LeaseStateMachine(interface, client, on_bound=on_bound)
            machines.append(machine)
            return machine

        orchestrator = ConnectionOrchestrator(
            LongLeaseClient(), store, machine_factory=factory)
        yield orchestrator
        orchestrator.stop("wlan0")
        orchestrator.stop("wlan1")

    def test_reconnect_stops_previous_attempt(self, popen, orchestrator, machines):
        first, second = supplicant_process(), supplicant_process()
        popen.side_effect = [first, second]

        assert orchestrator.connect("wlan0", "network={}\n").succeeded
        assert orchestrator.connect("wlan0", "network={}\n").succeeded

        assert popen.call_count == 2
        first.terminate.assert_called_once()
        second.terminate.assert_not_called()
        assert machines[0].state == LeaseState.STOPPED
        assert machines[1].state == LeaseState.BOUND

    def test_other_interfaces_untouched(self, popen, orchestrator, machines):
        wlan0, wlan1 = supplicant_process(), supplicant_process()
        popen.side_effect = [wlan0, wlan1]

        orchestrator.connect("wlan0", "network={}\n")
        orchestrator.connect("wlan1", "network={}\n")

        wlan0.terminate.assert_not_called()
        assert [m.state for m in machines] == [LeaseState.BOUND, LeaseState.BOUND]

    def test_stop(self, popen, orchestrator, machines):
        proc = supplicant_process()
        popen.side_effect = [proc]
        orchestrator.connect("wlan0", "network={}\n")

        orchestrator.stop("wlan0")

        proc.terminate.assert_called_once()
        assert machines[0].state == LeaseState.STOPPED

    def test_stuck_supplicant_is_killed(self, popen, orchestrator):
        def ignores_sigterm(timeout=None):
            if timeout is not None:
                raise subprocess.TimeoutExpired("wpa_supplicant", timeout)
            return -9

        first = supplicant_process()
        first.wait.side_effect = ignores_sigterm
        popen.side_effect = [first, supplicant_process()]

        orchestrator.connect("wlan0", "network={}\n")
        orchestrator.connect("wlan0", "network={}\n")

        first.kill.assert_called_once()
