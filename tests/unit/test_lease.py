"""
Unit tests for Lease, the default handle_lease and the dhclient client.
"""

import subprocess
from datetime import datetime, timedelta
from ipaddress import IPv4Address
from unittest.mock import MagicMock, patch

import pytest
from freezegun import freeze_time

from wifilink.dhcp.dhclient_adapter import DhclientClient, parse_lease_file
from wifilink.dhcp.lease import DhcpClient, Lease
from wifilink.errors import LeaseApplyError, LeaseTimeoutError, LeaseTransportError

ACQUIRED = datetime(2024, 1, 15, 12, 0, 0)


def make_lease(lifetime, mask="255.255.255.0", address="192.168.1.23"):
    return Lease(
        address=IPv4Address(address),
        valid_lifetime=lifetime,
        subnet_mask=IPv4Address(mask) if mask else None,
        acquired_at=ACQUIRED,
    )


class TestLease:
    """Test Lease timing and addressing helpers."""

    def test_renew_before_expiry_by_margin(self):
        lease = make_lease(3600)
        assert lease.renew_at(10) == ACQUIRED + timedelta(seconds=3590)
        assert lease.expires_at == ACQUIRED + timedelta(seconds=3600)

    def test_short_lease_renews_at_half_life(self):
        lease = make_lease(8)
        assert lease.renew_at(10) == ACQUIRED + timedelta(seconds=4)

    def test_infinite_lease(self):
        lease = make_lease(0)
        assert lease.is_infinite
        assert lease.renew_at(10) is None
        assert lease.expires_at is None

    def test_cidr(self):
        assert make_lease(60).cidr() == "192.168.1.23/24"

    def test_missing_mask_falls_back_to_address(self):
        lease = make_lease(60, mask=None)
        assert lease.netmask == IPv4Address("192.168.1.23")
        assert lease.cidr() == "192.168.1.23/32"


class StubClient(DhcpClient):
    def solicit(self, interface):
        raise NotImplementedError

    def renew(self, interface, lease):
        raise NotImplementedError


class TestHandleLease:
    """Test the default address installation."""

    @patch('wifilink.dhcp.lease.subprocess.run')
    def test_installs_address(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        StubClient().handle_lease("wlan0", make_lease(60))
        mock_run.assert_called_once()
        assert mock_run.call_args[0][0] == [
            'ip', 'addr', 'replace', '192.168.1.23/24', 'dev', 'wlan0']

    @patch('wifilink.dhcp.lease.subprocess.run')
    def test_failure_raises(self, mock_run):
        mock_run.return_value = MagicMock(returncode=2, stderr="RTNETLINK answers: Operation not permitted")
        with pytest.raises(LeaseApplyError, match="Operation not permitted"):
            StubClient().handle_lease("wlan0", make_lease(60))


LEASE_FILE = """\
lease {
  interface "eth0";
  fixed-address 10.0.0.5;
  option subnet-mask 255.0.0.0;
  option dhcp-lease-time 600;
}
lease {
  interface "wlan0";
  fixed-address 192.168.1.23;
  option subnet-mask 255.255.255.0;
  option dhcp-lease-time 86400;
  renew 3 2024/01/17 02:11:04;
}
"""


class TestParseLeaseFile:
    """Test dhclient lease-file parsing."""

    def test_newest_lease_for_interface(self):
        lease = parse_lease_file(LEASE_FILE, "wlan0")
        assert lease.address == IPv4Address("192.168.1.23")
        assert lease.subnet_mask == IPv4Address("255.255.255.0")
        assert lease.valid_lifetime == 86400

    def test_filters_by_interface(self):
        lease = parse_lease_file(LEASE_FILE, "eth0")
        assert lease.address == IPv4Address("10.0.0.5")

    def test_infinite_lease_time(self):
        text = 'lease {\n  fixed-address 10.1.1.1;\n  option dhcp-lease-time 4294967295;\n}\n'
        assert parse_lease_file(text).is_infinite

    def test_missing_mask(self):
        text = 'lease {\n  fixed-address 10.1.1.1;\n  option dhcp-lease-time 60;\n}\n'
        assert parse_lease_file(text).subnet_mask is None

    def test_no_lease(self):
        assert parse_lease_file("") is None

    def test_acquired_at_is_kept(self):
        lease = parse_lease_file(LEASE_FILE, "wlan0", acquired_at=ACQUIRED)
        assert lease.acquired_at == ACQUIRED
        assert lease.expires_at == ACQUIRED + timedelta(seconds=86400)

    def test_malformed_address(self):
        text = 'lease {\n  fixed-address 999.1.1.1;\n  option dhcp-lease-time 60;\n}\n'
        with pytest.raises(ValueError):
            parse_lease_file(text)


class TestDhclientClient:
    """Test DhclientClient process handling."""

    @pytest.fixture
    def client(self, tmp_path):
        return DhclientClient(timeout_seconds=15, state_dir=str(tmp_path))

    @patch('wifilink.dhcp.dhclient_adapter.subprocess.run')
    def test_solicit_reads_lease_file(self, mock_run, client, tmp_path):
        (tmp_path / "wifilink-wlan0.leases").write_text(LEASE_FILE)
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

        lease = client.solicit("wlan0")

        assert lease.address == IPv4Address("192.168.1.23")
        first_cmd = mock_run.call_args_list[0][0][0]
        assert first_cmd[:3] == ['dhclient', '-1', '-4']
        assert first_cmd[-1] == "wlan0"
        release_cmd = mock_run.call_args_list[1][0][0]
        assert '-x' in release_cmd

    @patch('wifilink.dhcp.dhclient_adapter.subprocess.run')
    def test_timeout(self, mock_run, client):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="dhclient", timeout=15)
        with pytest.raises(LeaseTimeoutError):
            client.solicit("wlan0")

    @patch('wifilink.dhcp.dhclient_adapter.subprocess.run')
    def test_nonzero_exit(self, mock_run, client):
        mock_run.return_value = MagicMock(returncode=2, stdout="", stderr="No DHCPOFFERS received.")
        with pytest.raises(LeaseTransportError, match="No DHCPOFFERS"):
            client.renew("wlan0", make_lease(60))

    @patch('wifilink.dhcp.dhclient_adapter.subprocess.run')
    def test_missing_binary(self, mock_run, client):
        mock_run.side_effect = FileNotFoundError("dhclient")
        with pytest.raises(LeaseTransportError):
            client.solicit("wlan0")

    @patch('wifilink.dhcp.dhclient_adapter.subprocess.run')
    def test_empty_lease_file(self, mock_run, client, tmp_path):
        (tmp_path / "wifilink-wlan0.leases").write_text("")
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        with pytest.raises(LeaseTransportError, match="no usable lease"):
            client.solicit("wlan0")

    @patch('wifilink.dhcp.dhclient_adapter.subprocess.run')
    def test_malformed_lease_file(self, mock_run, client, tmp_path):
        (tmp_path / "wifilink-wlan0.leases").write_text(
            'lease {\n  interface "wlan0";\n  fixed-address 999.1.1.1;\n'
            '  option dhcp-lease-time 60;\n}\n')
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

        with pytest.raises(LeaseTransportError, match="malformed lease") as excinfo:
            client.solicit("wlan0")
        assert excinfo.value.interface == "wlan0"

    def test_lease_time_counts_from_request(self, client, tmp_path):
        """Time spent inside dhclient is not added to the lease."""
        (tmp_path / "wifilink-wlan0.leases").write_text(LEASE_FILE)

        with freeze_time(ACQUIRED) as frozen:
            def slow_dhclient(cmd, **kwargs):
                frozen.tick(timedelta(seconds=12))
                return MagicMock(returncode=0, stdout="", stderr="")

            with patch('wifilink.dhcp.dhclient_adapter.subprocess.run',
                       side_effect=slow_dhclient):
                lease = client.solicit("wlan0")

        assert lease.acquired_at == ACQUIRED
