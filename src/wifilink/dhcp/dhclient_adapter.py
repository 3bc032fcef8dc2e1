"""
DhcpClient backed by ISC dhclient.

Each exchange runs 'dhclient -1 -4' against a private lease file, reads the
newest lease block back, then stops the dhclient daemon so renewals stay
under the lease state machine's control.

Example lease block:
lease {
  interface "wlan0";
  fixed-address 192.168.1.23;
  option subnet-mask 255.255.255.0;
  option dhcp-lease-time 86400;
  renew 3 2024/01/17 02:11:04;
}
"""

import logging
import re
import subprocess
from datetime import datetime
from ipaddress import IPv4Address
from pathlib import Path
from typing import Optional

from wifilink.dhcp.lease import DhcpClient, Lease
from wifilink.errors import LeaseTimeoutError, LeaseTransportError

logger = logging.getLogger(__name__)

LEASE_BLOCK_RE = re.compile(r'lease\s*\{(.*?)\}', re.DOTALL)
FIXED_ADDRESS_RE = re.compile(r'^\s*fixed-address\s+([0-9.]+);', re.MULTILINE)
SUBNET_MASK_RE = re.compile(r'^\s*option\s+subnet-mask\s+([0-9.]+);', re.MULTILINE)
LEASE_TIME_RE = re.compile(r'^\s*option\s+dhcp-lease-time\s+(\d+);', re.MULTILINE)
INTERFACE_RE = re.compile(r'^\s*interface\s+"([^"]+)";', re.MULTILINE)

# RFC 2131: 0xffffffff is an infinite lease
DHCP_INFINITY = 0xFFFFFFFF


def parse_lease_file(
    text: str,
    interface: Optional[str] = None,
    acquired_at: Optional[datetime] = None,
) -> Optional[Lease]:
    """
    Newest lease in dhclient lease-file text.

    Args:
        text: Lease file contents
        interface: Only consider leases recorded for this interface
        acquired_at: When the exchange that produced the lease started
            (default: now)

    Returns:
        The last complete lease, or None if there is none

    Raises:
        ValueError: If the newest lease holds a malformed address or mask
    """
    for block in reversed(LEASE_BLOCK_RE.findall(text)):
        if interface is not None:
            iface = INTERFACE_RE.search(block)
            if iface and iface.group(1) != interface:
                continue

        address = FIXED_ADDRESS_RE.search(block)
        lease_time = LEASE_TIME_RE.search(block)
        if not address or not lease_time:
            continue

        lifetime = int(lease_time.group(1))
        if lifetime == DHCP_INFINITY:
            lifetime = 0
        mask = SUBNET_MASK_RE.search(block)
        return Lease(
            address=IPv4Address(address.group(1)),
            valid_lifetime=lifetime,
            subnet_mask=IPv4Address(mask.group(1)) if mask else None,
            acquired_at=acquired_at or datetime.now(),
        )
    return None


class DhclientClient(DhcpClient):
    """DHCPv4 exchanges delegated to the dhclient binary."""

    def __init__(
        self,
        binary: str = "dhclient",
        timeout_seconds: float = 15.0,
        state_dir: str = "/tmp",
    ):
        """
        Args:
            binary: dhclient executable
            timeout_seconds: Per-exchange timeout
            state_dir: Directory for per-interface lease and pid files
        """
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self.state_dir = Path(state_dir)

    def _lease_file(self, interface: str) -> Path:
        return self.state_dir / f"wifilink-{interface}.leases"

    def _pid_file(self, interface: str) -> Path:
        return self.state_dir / f"wifilink-{interface}.pid"

    def _exchange(self, interface: str) -> Lease:
        lease_file = self._lease_file(interface)
        pid_file = self._pid_file(interface)
        cmd = [self.binary, '-1', '-4', '-v',
               '-lf', str(lease_file), '-pf', str(pid_file), interface]
        # Lease time counts from the request, not from reading the file back
        requested_at = datetime.now()
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired as e:
            raise LeaseTimeoutError(
                interface, f"no DHCP answer within {self.timeout_seconds:g}s") from e
        except OSError as e:
            raise LeaseTransportError(interface, f"{self.binary}: {e}") from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise LeaseTransportError(
                interface, f"{self.binary} exited {result.returncode}: {output}")

        self._release_daemon(interface)

        try:
            text = lease_file.read_text(encoding='utf-8')
        except OSError as e:
            raise LeaseTransportError(interface, f"{lease_file}: {e}") from e
        try:
            lease = parse_lease_file(text, interface, requested_at)
        except ValueError as e:
            raise LeaseTransportError(interface, f"malformed lease in {lease_file}: {e}") from e
        if lease is None:
            raise LeaseTransportError(interface, f"no usable lease in {lease_file}")
        return lease

    def _release_daemon(self, interface: str) -> None:
        """Stop the dhclient daemon without releasing the lease."""
        cmd = [self.binary, '-x', '-pf', str(self._pid_file(interface)), interface]
        try:
            subprocess.run(cmd, capture_output=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"{interface}: could not stop {self.binary}: {e}")

    def solicit(self, interface: str) -> Lease:
        return self._exchange(interface)

    def renew(self, interface: str, lease: Lease) -> Lease:
        # dhclient requests the address recorded in the lease file (INIT-REBOOT)
        logger.debug(f"{interface}: renewing {lease.address}")
        return self._exchange(interface)
