"""
Wi-Fi adapter interface and the records it exchanges.
Allows test doubles to be injected in place of the wireless tools.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class SecurityKind(Enum):
    """Security scheme a network requires, as far as we can connect to it."""
    OPEN = "open"
    WPA_PSK = "wpa-psk"
    WPA_EAP = "wpa-eap"
    UNSUPPORTED = "unsupported"   # WEP, WPA1-only, SAE, ...


@dataclass(frozen=True)
class NetworkRecord:
    """One discovered network, deduplicated by SSID."""
    ssid: str
    security: SecurityKind


@dataclass(frozen=True)
class ConnectionOutcome:
    """Terminal result of one connection or lease attempt on one interface."""
    interface: str
    succeeded: bool
    error: Optional[BaseException] = None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class WifiAdapter(ABC):
    """Abstract base class for Wi-Fi adapter implementations."""

    @abstractmethod
    def list_interfaces(self) -> List[str]:
        """
        List wireless interfaces present on the host.

        Raises:
            ToolInvocationError: If the status tool fails
        """

    @abstractmethod
    def scan_networks(self) -> List[NetworkRecord]:
        """
        Scan for nearby networks on the adapter's interface.

        Returns:
            Networks in scan order, at most one per SSID

        Raises:
            ToolInvocationError: If the scan tool fails
            ScanParseError: If the scan output is structurally inconsistent
        """

    @abstractmethod
    def current_network(self) -> str:
        """
        Get the SSID the interface is associated with ("" when none).

        Raises:
            ToolInvocationError: If the query tool fails
        """

    @abstractmethod
    def connect(self, ssid: str, *secrets: str) -> None:
        """
        Associate with a network and obtain an IPv4 lease.

        Args:
            ssid: Network SSID
            secrets: Nothing (open), a passphrase (PSK), or a passphrase
                followed by an identity (enterprise)

        Raises:
            WifiError: Describing why the attempt failed
        """
