"""
State behind the provisioning web UI.
Tracks nearby networks, the SSID being connected to and the current SSID.
Each connection attempt runs in its own thread and is tracked by a Future.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Dict, List, Optional

from wifilink.errors import WifiError
from wifilink.wifi.adapter import NetworkRecord, WifiAdapter

logger = logging.getLogger(__name__)


class ConnectInProgressError(WifiError):
    """A second connection attempt was requested while one is running."""


class WifiService:
    """Serializes UI requests against one WifiAdapter."""

    def __init__(self, adapter: WifiAdapter):
        self.adapter = adapter
        self._lock = threading.Lock()
        self.nearby: List[NetworkRecord] = []
        self.current = ""
        self.connecting: Optional[str] = None
        self.last_error: Optional[str] = None
        self._attempt: Optional[Future] = None

    @property
    def attempt(self) -> Optional[Future]:
        """Future of the most recent connection attempt."""
        return self._attempt

    def snapshot(self) -> Dict:
        """JSON-serializable view of the current state."""
        with self._lock:
            return {
                'nearby': [
                    {'ssid': net.ssid, 'security': net.security.value}
                    for net in self.nearby
                ],
                'connecting': self.connecting,
                'current': self.current,
                'last_error': self.last_error,
            }

    def refresh(self) -> None:
        """
        Rescan and re-read the current SSID.

        Raises:
            WifiError: If either tool fails
        """
        nearby = self.adapter.scan_networks()
        current = self.adapter.current_network()
        with self._lock:
            self.nearby = nearby
            self.current = current
        logger.info(f"Refreshed: {len(nearby)} networks nearby, current={current!r}")

    def request_connect(self, ssid: str, *secrets: str) -> Future:
        """
        Start a background connection attempt.

        Returns:
            Future resolving to None on success or raising the attempt's error

        Raises:
            ConnectInProgressError: If an attempt is already running
        """
        with self._lock:
            if self._attempt is not None and not self._attempt.done():
                raise ConnectInProgressError(
                    f"already connecting to {self.connecting}")
            attempt: Future = Future()
            self._attempt = attempt
            self.connecting = ssid
            self.last_error = None

        def run() -> None:
            try:
                self.adapter.connect(ssid, *secrets)
            except Exception as e:
                logger.error(f"Connection to {ssid} failed: {e}")
                with self._lock:
                    self.connecting = None
                    self.last_error = str(e)
                attempt.set_exception(e)
                return
            with self._lock:
                self.connecting = None
                self.current = ssid
            attempt.set_result(None)

        threading.Thread(target=run, name=f"connect-{ssid}", daemon=True).start()
        return attempt
