"""
Runs one lease state machine per matching interface.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from wifilink.dhcp.lease import DhcpClient
from wifilink.dhcp.links import link_up, list_links, match_interfaces
from wifilink.dhcp.retry import RetryPolicy
from wifilink.dhcp.state_machine import DEFAULT_RENEWAL_MARGIN, LeaseStateMachine
from wifilink.errors import NoMatchingInterfaceError
from wifilink.wifi.adapter import ConnectionOutcome

logger = logging.getLogger(__name__)


@dataclass
class DispatchSummary:
    """What a dispatcher run did, interface by interface."""
    attempted: int = 0
    failed: int = 0
    outcomes: Dict[str, ConnectionOutcome] = field(default_factory=dict)


class InterfaceDispatcher:
    """
    Fans DHCP lease acquisition out over every interface matching a selector.

    Interfaces fail independently: one interface's fatal error is logged and
    counted but never stops its siblings.
    """

    def __init__(
        self,
        client: DhcpClient,
        match_mode: str = "regex",
        retry_factory: Callable[[], RetryPolicy] = RetryPolicy,
        renewal_margin: float = DEFAULT_RENEWAL_MARGIN,
        link_lister: Optional[Callable[[], List[str]]] = None,
        link_upper: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            client: DHCP client shared by all machines (it must be stateless per interface)
            match_mode: "regex" or "exact" selector matching
            retry_factory: Builds a fresh RetryPolicy per machine
            renewal_margin: Passed to every LeaseStateMachine
            link_lister: Enumerates interface names (default: /sys/class/net)
            link_upper: Brings an interface administratively up (default: ip link)
        """
        self.client = client
        self.match_mode = match_mode
        self.retry_factory = retry_factory
        self.renewal_margin = renewal_margin
        self.link_lister = link_lister or list_links
        self.link_upper = link_upper or link_up

    def run(self, selector: str) -> DispatchSummary:
        """
        Acquire leases on every interface matching ``selector``.

        Blocks until every machine reaches a terminal state.

        Raises:
            NoMatchingInterfaceError: If nothing matches; no work is started
        """
        interfaces = match_interfaces(self.link_lister(), selector, self.match_mode)
        if not interfaces:
            raise NoMatchingInterfaceError(selector)

        logger.info(f"Starting DHCPv4 on {', '.join(interfaces)}")
        summary = DispatchSummary()
        with ThreadPoolExecutor(max_workers=len(interfaces),
                                thread_name_prefix="dhcp") as pool:
            futures = {pool.submit(self._run_interface, name): name
                       for name in interfaces}
            for future in as_completed(futures):
                outcome = future.result()
                summary.attempted += 1
                summary.outcomes[outcome.interface] = outcome
                if not outcome.succeeded:
                    summary.failed += 1
                    logger.error(f"{outcome.interface}: {outcome.error}")

        logger.info(
            f"{summary.attempted} dhclient attempts, {summary.failed} failed")
        return summary

    def _run_interface(self, interface: str) -> ConnectionOutcome:
        try:
            self.link_upper(interface)
            machine = LeaseStateMachine(
                interface,
                self.client,
                retry_policy=self.retry_factory(),
                renewal_margin=self.renewal_margin,
            )
            machine.run()
        except Exception as e:
            return ConnectionOutcome(interface, False, e)
        return ConnectionOutcome(interface, True)
