"""
Connection attempt orchestration.

Writes the profile, launches wpa_supplicant, and races the first DHCP lease
on the interface against a fixed budget. Each interface has at most one
supplicant and one lease machine; connecting again replaces both.
"""

import logging
import subprocess
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from wifilink.dhcp.lease import DhcpClient, Lease
from wifilink.dhcp.state_machine import LeaseStateMachine
from wifilink.errors import ConnectionTimeoutError, ToolInvocationError, WifiError
from wifilink.wifi.adapter import ConnectionOutcome
from wifilink.wifi.profile_store import ProfileStore

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0
STOP_TIMEOUT = 5.0


@dataclass
class ActiveLink:
    """The supplicant and lease machine currently owning an interface."""
    supplicant: subprocess.Popen
    machine: LeaseStateMachine
    thread: threading.Thread


class ConnectionOrchestrator:
    """Runs one supplicant + lease attempt per connect() call."""

    def __init__(
        self,
        client: DhcpClient,
        profile_store: Optional[ProfileStore] = None,
        supplicant: str = "wpa_supplicant",
        timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT,
        machine_factory: Optional[Callable[..., LeaseStateMachine]] = None,
    ):
        """
        Args:
            client: DHCP client for the lease state machine
            profile_store: Where the profile is written (default /tmp/wifi.conf)
            supplicant: wpa_supplicant executable
            timeout_seconds: Budget for the first lease to be bound
            machine_factory: Builds the LeaseStateMachine; receives
                (interface, client, on_bound=...)
        """
        self.client = client
        self.profile_store = profile_store or ProfileStore()
        self.supplicant = supplicant
        self.timeout_seconds = timeout_seconds
        self.machine_factory = machine_factory or LeaseStateMachine
        self._active: Dict[str, ActiveLink] = {}
        self._lock = threading.Lock()

    def connect(self, interface: str, profile: str) -> ConnectionOutcome:
        """
        Attempt to bring ``interface`` onto the network ``profile`` describes.

        Whatever an earlier call left running on the interface is stopped
        first. Exactly one outcome is returned. On success the lease machine
        keeps renewing in the background; on timeout it keeps trying until
        the next connect() or stop() on the interface.
        """
        with self._lock:
            self._release(interface)

            try:
                profile_path = self.profile_store.write(profile)
                supplicant = self._start_supplicant(interface, str(profile_path))
            except WifiError as e:
                return ConnectionOutcome(interface, False, e)

            bound: Future = Future()
            try:
                machine, thread = self._start_lease_machine(interface, bound)
            except Exception as e:
                self._terminate(interface, supplicant)
                return ConnectionOutcome(interface, False, _described(interface, e))
            self._active[interface] = ActiveLink(supplicant, machine, thread)

            try:
                lease = bound.result(timeout=self.timeout_seconds)
            except FutureTimeoutError:
                error = ConnectionTimeoutError(interface, self.timeout_seconds)
                logger.warning(str(error))
                return ConnectionOutcome(interface, False, error)
            except Exception as e:
                return ConnectionOutcome(interface, False, _described(interface, e))

        logger.info(f"{interface}: connected with address {lease.address}")
        return ConnectionOutcome(interface, True)

    def stop(self, interface: str) -> None:
        """Stop the supplicant and lease machine running on ``interface``, if any."""
        with self._lock:
            self._release(interface)

    def _release(self, interface: str) -> None:
        link = self._active.pop(interface, None)
        if link is None:
            return
        logger.info(f"{interface}: stopping previous connection")
        link.machine.stop()
        self._terminate(interface, link.supplicant)
        link.thread.join(STOP_TIMEOUT)
        if link.thread.is_alive():
            # A stopped machine never binds, even if its exchange completes later
            logger.warning(f"{interface}: previous lease machine is still in an exchange")

    def _terminate(self, interface: str, proc: subprocess.Popen) -> None:
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning(f"{interface}: {self.supplicant} ignored SIGTERM, killing it")
            proc.kill()
            proc.wait()

    def _start_supplicant(self, interface: str, profile_path: str) -> subprocess.Popen:
        cmd = [self.supplicant, f"-i{interface}", f"-c{profile_path}"]
        try:
            proc = subprocess.Popen(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as e:
            raise ToolInvocationError(self.supplicant, cause=e) from e

        # wpa_supplicant has to keep running; its output is only logged
        threading.Thread(
            target=self._log_supplicant, args=(interface, proc),
            name=f"supplicant-{interface}", daemon=True).start()
        return proc

    def _log_supplicant(self, interface: str, proc: subprocess.Popen) -> None:
        for line in proc.stdout:
            logger.debug(f"{interface}: {self.supplicant}: {line.rstrip()}")
        code = proc.wait()
        if code < 0:
            logger.debug(f"{interface}: {self.supplicant} stopped by signal {-code}")
        elif code != 0:
            logger.warning(f"{interface}: {self.supplicant} exited with status {code}")
        else:
            logger.debug(f"{interface}: {self.supplicant} exited")

    def _start_lease_machine(self, interface: str, bound: Future):
        def on_bound(lease: Lease) -> None:
            if not bound.done():
                bound.set_result(lease)

        machine = self.machine_factory(interface, self.client, on_bound=on_bound)

        def run() -> None:
            try:
                machine.run()
            except Exception as e:
                if not bound.done():
                    bound.set_exception(e)
                else:
                    logger.error(f"{interface}: lease lost after connecting: {e}")
                return
            if not bound.done():
                bound.set_exception(WifiError(f"{interface}: lease machine stopped"))

        thread = threading.Thread(target=run, name=f"lease-{interface}", daemon=True)
        thread.start()
        return machine, thread


def _described(interface: str, error: Exception) -> WifiError:
    """``error`` as a WifiError naming the interface."""
    if isinstance(error, WifiError):
        return error
    logger.error(f"{interface}: unexpected {type(error).__name__}: {error}")
    return WifiError(f"{interface}: {type(error).__name__}: {error}")
