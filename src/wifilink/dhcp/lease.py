"""
DHCPv4 lease record and the client interface the lease state machine drives.
The wire protocol itself lives behind DhcpClient.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from ipaddress import IPv4Address, IPv4Network
from typing import Optional

from wifilink.errors import LeaseApplyError

logger = logging.getLogger(__name__)

INFINITE_LIFETIME = 0


@dataclass(frozen=True)
class Lease:
    """An address assignment granted by a DHCP server."""
    address: IPv4Address
    valid_lifetime: int                       # seconds; 0 means infinite
    subnet_mask: Optional[IPv4Address] = None
    acquired_at: datetime = field(default_factory=lambda: datetime.now())

    @property
    def netmask(self) -> IPv4Address:
        """Subnet mask, or the address itself when the server sent none."""
        return self.subnet_mask if self.subnet_mask is not None else self.address

    @property
    def is_infinite(self) -> bool:
        return self.valid_lifetime == INFINITE_LIFETIME

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.is_infinite:
            return None
        return self.acquired_at + timedelta(seconds=self.valid_lifetime)

    def renew_at(self, margin: float) -> Optional[datetime]:
        """
        When to start renewing: ``margin`` seconds before expiry.

        Leases no longer than the margin renew at half their lifetime so the
        request still goes out before expiry. None for infinite leases.
        """
        if self.is_infinite:
            return None
        if self.valid_lifetime > margin:
            lead = self.valid_lifetime - margin
        else:
            lead = self.valid_lifetime / 2
        return self.acquired_at + timedelta(seconds=lead)

    def cidr(self) -> str:
        """
        Address with prefix length, as ``ip addr`` expects it.

        A mask that is not a contiguous netmask (the address-as-mask fallback
        usually is not) yields a host route.
        """
        try:
            prefix = IPv4Network(f"0.0.0.0/{self.netmask}").prefixlen
        except ValueError:
            prefix = 32
        return f"{self.address}/{prefix}"


class DhcpClient(ABC):
    """DHCPv4 client operations used by the lease state machine."""

    @abstractmethod
    def solicit(self, interface: str) -> Lease:
        """
        Obtain an initial lease.

        Raises:
            LeaseTimeoutError: If the exchange timed out
            LeaseTransportError: For any other exchange failure
        """

    @abstractmethod
    def renew(self, interface: str, lease: Lease) -> Lease:
        """
        Extend ``lease``.

        Raises:
            LeaseTimeoutError: If the exchange timed out
            LeaseTransportError: For any other exchange failure
        """

    def handle_lease(self, interface: str, lease: Lease) -> None:
        """
        Install the lease's address on the interface.

        Raises:
            LeaseApplyError: If the address could not be configured
        """
        cmd = ['ip', 'addr', 'replace', lease.cidr(), 'dev', interface]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
        except (OSError, subprocess.SubprocessError) as e:
            raise LeaseApplyError(interface, f"ip addr replace: {e}") from e
        if result.returncode != 0:
            raise LeaseApplyError(
                interface, f"ip addr replace {lease.cidr()}: {result.stderr.strip()}")
        logger.info(f"{interface}: configured {lease.cidr()}")
