"""
Error types raised by wifilink.
Every error carries enough context (interface, SSID, tool output) to be shown
to an operator verbatim.
"""

from typing import Optional


class WifiError(RuntimeError):
    """Base class for all wifilink failures."""


class ToolInvocationError(WifiError):
    """An external tool failed to run or exited with a nonzero status."""

    def __init__(self, tool: str, output: str = "", cause: Optional[BaseException] = None):
        self.tool = tool
        self.output = output
        self.cause = cause
        detail = output.strip() or (str(cause) if cause else "no output")
        super().__init__(f"{tool}: {detail}")


class ScanParseError(WifiError):
    """Scan text did not have the structure the parser relies on."""


class InvalidArgumentCountError(WifiError):
    """Profile generation was called with an unsupported number of secrets."""


class InvalidPassphraseError(WifiError):
    """Passphrase length is outside what WPA personal mode accepts."""


class LeaseError(WifiError):
    """A DHCP exchange for an interface failed."""

    def __init__(self, interface: str, message: str):
        self.interface = interface
        super().__init__(f"{interface}: {message}")


class LeaseTimeoutError(LeaseError):
    """A single DHCP exchange ran past its own timeout."""


class LeaseTransportError(LeaseError):
    """A DHCP exchange failed for a reason other than a timeout."""


class LeaseApplyError(LeaseError):
    """A granted lease could not be installed on the interface."""


class ConnectionTimeoutError(WifiError):
    """No lease was bound within the connection attempt budget."""

    def __init__(self, interface: str, timeout: float):
        self.interface = interface
        self.timeout = timeout
        super().__init__(f"{interface}: connection timeout after {timeout:g}s")


class NoMatchingInterfaceError(WifiError):
    """An interface selector matched nothing."""

    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"No interfaces match {selector}")


class InvalidSelectorError(WifiError):
    """An interface selector is not a valid regular expression."""

    def __init__(self, selector: str, detail: str):
        self.selector = selector
        super().__init__(f"Invalid interface selector {selector!r}: {detail}")
