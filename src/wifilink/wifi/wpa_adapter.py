"""
wireless-tools / wpa_supplicant based Wi-Fi adapter implementation.
Shells out to iwconfig, iwlist and iwgetid, and connects through
ConnectionOrchestrator.
"""

import logging
import subprocess
from typing import List, Optional

from wifilink.errors import ToolInvocationError
from wifilink.wifi.adapter import NetworkRecord, WifiAdapter
from wifilink.wifi.orchestrator import ConnectionOrchestrator
from wifilink.wifi.profile import generate_profile
from wifilink.wifi.scan_parser import parse_interfaces, parse_scan

logger = logging.getLogger(__name__)


def run_tool(cmd: List[str], timeout_seconds: int = 30) -> str:
    """
    Run a tool and return its combined output.

    Raises:
        ToolInvocationError: If it cannot be started, times out or exits nonzero
    """
    tool = " ".join(cmd)
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout_seconds
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ToolInvocationError(tool, cause=e) from e

    if result.returncode != 0:
        raise ToolInvocationError(tool, result.stdout)
    return result.stdout


class WpaSupplicantAdapter(WifiAdapter):
    """Wi-Fi adapter implementation using wireless-tools and wpa_supplicant."""

    def __init__(self, interface: str, orchestrator: Optional[ConnectionOrchestrator] = None):
        """
        Args:
            interface: Wi-Fi interface name
            orchestrator: Runs connection attempts; required for connect()
        """
        self.interface = interface
        self.orchestrator = orchestrator

    def list_interfaces(self) -> List[str]:
        return parse_interfaces(run_tool(['iwconfig']))

    def scan_networks(self) -> List[NetworkRecord]:
        output = run_tool(['iwlist', self.interface, 'scanning'])
        networks = parse_scan(output)
        logger.info(f"Scan on {self.interface} found {len(networks)} networks")
        return networks

    def current_network(self) -> str:
        return run_tool(['iwgetid', '-r']).strip()

    def connect(self, ssid: str, *secrets: str) -> None:
        if self.orchestrator is None:
            raise RuntimeError("WpaSupplicantAdapter.connect needs an orchestrator")

        profile = generate_profile(ssid, *secrets)
        logger.info(f"Connecting {self.interface} to {ssid}")
        outcome = self.orchestrator.connect(self.interface, profile)
        if not outcome.succeeded:
            logger.warning(f"Failed to connect to {ssid}: {outcome.error}")
            outcome.raise_for_error()
        logger.info(f"Connected to Wi-Fi network: {ssid}")
