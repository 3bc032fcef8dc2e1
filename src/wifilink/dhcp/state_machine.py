"""
Per-interface DHCPv4 lease state machine.

SOLICITING -> BOUND -> RENEWING -> BOUND -> ... -> INFINITE_LEASE | FATAL

stop() ends a machine in any state; it goes to STOPPED at its next step.

One machine owns one interface; nothing else may run DHCP exchanges on that
interface while it is alive.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from wifilink.dhcp.lease import DhcpClient, Lease
from wifilink.dhcp.retry import RetryPolicy
from wifilink.errors import LeaseError, LeaseTimeoutError, LeaseTransportError

logger = logging.getLogger(__name__)

DEFAULT_RENEWAL_MARGIN = 10.0


class LeaseState(Enum):
    """Lease state machine states."""
    IDLE = "idle"
    SOLICITING = "soliciting"
    BOUND = "bound"
    RENEWING = "renewing"
    INFINITE_LEASE = "infinite_lease"   # Terminal, success
    FATAL = "fatal"                     # Terminal, failure
    STOPPED = "stopped"                 # Terminal, stopped by its owner


class _StopRequested(Exception):
    pass


class LeaseStateMachine:
    """
    Acquires a lease on one interface and keeps it alive.

    ``run()`` blocks until the server grants an infinite lease, an exchange
    fails past its retry budget (last error raised), or ``stop()`` is
    called. Finite leases are renewed indefinitely.
    """

    def __init__(
        self,
        interface: str,
        client: DhcpClient,
        retry_policy: Optional[RetryPolicy] = None,
        renewal_margin: float = DEFAULT_RENEWAL_MARGIN,
        on_bound: Optional[Callable[[Lease], None]] = None,
        sleep: Optional[Callable[[float], object]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            interface: Interface name this machine owns
            client: DHCP client performing the exchanges
            retry_policy: Attempt budget per exchange (default: 5 attempts)
            renewal_margin: Seconds before expiry at which renewal starts
            on_bound: Called with the lease each time one is installed
            sleep: Blocking sleep, injectable for tests (default: a wait that
                stop() interrupts)
            clock: Current time, injectable for tests
        """
        self.interface = interface
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.renewal_margin = renewal_margin
        self.on_bound = on_bound
        self._stop_requested = threading.Event()
        self._sleep = sleep or self._stop_requested.wait
        self._clock = clock or (lambda: datetime.now())
        self.state = LeaseState.IDLE
        self.lease: Optional[Lease] = None
        self.renewals = 0

    def stop(self) -> None:
        """Ask the machine to stop; an exchange in flight is not bound."""
        if not self._stop_requested.is_set():
            logger.info(f"{self.interface}: stopping lease machine")
        self._stop_requested.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    def run(self) -> Optional[Lease]:
        """
        Drive the machine to a terminal state.

        Returns:
            The infinite lease that ended the renewal loop, or the last bound
            lease (None if there was none) when stopped

        Raises:
            LeaseError: The last error once an exchange exhausted its retries,
                or a LeaseTransportError wrapping any unexpected failure
        """
        logger.info(f"{self.interface}: start getting DHCPv4 lease")
        try:
            self._check_stop()
            self._transition(LeaseState.SOLICITING)
            lease = self._exchange(lambda: self.client.solicit(self.interface))

            while True:
                self._check_stop()
                self._bind(lease)
                if lease.is_infinite:
                    logger.info(f"{self.interface}: server returned infinite lease")
                    self._transition(LeaseState.INFINITE_LEASE)
                    return lease

                self._wait_for_renewal(lease)
                self._check_stop()
                self._transition(LeaseState.RENEWING)
                previous = lease
                lease = self._exchange(lambda: self.client.renew(self.interface, previous))
                self.renewals += 1
        except _StopRequested:
            self._transition(LeaseState.STOPPED)
            return self.lease
        except LeaseError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = LeaseTransportError(self.interface, f"{type(e).__name__}: {e}")
            self._fail(error)
            raise error from e

    def _check_stop(self) -> None:
        if self._stop_requested.is_set():
            raise _StopRequested()

    def _fail(self, error: LeaseError) -> None:
        self._transition(LeaseState.FATAL)
        logger.error(f"{self.interface}: giving up on DHCPv4 lease: {error}")

    def _transition(self, state: LeaseState) -> None:
        logger.debug(f"{self.interface}: {self.state.value} -> {state.value}")
        self.state = state

    def _exchange(self, attempt: Callable[[], Lease]) -> Lease:
        """Run one solicit/renew exchange under the retry policy."""
        policy = self.retry_policy
        policy.reset()
        verb = "request" if self.state == LeaseState.SOLICITING else "renewal"

        while True:
            if policy.attempt_count > 0:
                logger.info(f"{self.interface}: resending DHCPv4 {verb}")
            try:
                return attempt()
            except LeaseTimeoutError as e:
                logger.warning(f"{self.interface}: timeout contacting DHCP server: {e}")
                delay = policy.record_failure(e)
            except LeaseError as e:
                logger.warning(f"{self.interface}: DHCPv4 {verb} failed: {e}")
                delay = policy.record_failure(e)

            if delay is None:
                raise policy.last_error
            if delay > 0:
                self._sleep(delay)
            self._check_stop()

    def _bind(self, lease: Lease) -> None:
        self.client.handle_lease(self.interface, lease)
        self.lease = lease
        self._transition(LeaseState.BOUND)
        logger.info(
            f"{self.interface}: bound {lease.address} mask {lease.netmask} "
            f"lifetime {lease.valid_lifetime or 'infinite'}")
        if self.on_bound is not None:
            self.on_bound(lease)

    def _wait_for_renewal(self, lease: Lease) -> None:
        # renew_at is strictly before expiry
        delay = (lease.renew_at(self.renewal_margin) - self._clock()).total_seconds()
        if delay > 0:
            logger.debug(f"{self.interface}: renewing in {delay:.0f}s")
            self._sleep(delay)
