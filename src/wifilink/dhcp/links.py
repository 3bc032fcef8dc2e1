"""
Link-layer helpers: enumerate interfaces, bring them up, select by name.
"""

import logging
import os
import re
import subprocess
from typing import Iterable, List

from wifilink.errors import InvalidSelectorError, ToolInvocationError

logger = logging.getLogger(__name__)

SYS_CLASS_NET = "/sys/class/net"


def list_links(sys_class_net: str = SYS_CLASS_NET) -> List[str]:
    """All interface names known to the kernel, sorted."""
    try:
        return sorted(os.listdir(sys_class_net))
    except OSError as e:
        raise ToolInvocationError(sys_class_net, cause=e) from e


def link_up(interface: str) -> None:
    """
    Set an interface administratively up.

    Raises:
        ToolInvocationError: If 'ip link set' fails
    """
    cmd = ['ip', 'link', 'set', 'dev', interface, 'up']
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
    except (OSError, subprocess.SubprocessError) as e:
        raise ToolInvocationError(f"ip link set dev {interface} up", cause=e) from e
    if result.returncode != 0:
        raise ToolInvocationError(
            f"ip link set dev {interface} up", result.stderr or result.stdout)
    logger.debug(f"{interface}: link up")


def match_interfaces(names: Iterable[str], selector: str, mode: str = "regex") -> List[str]:
    """
    Interfaces whose name matches ``selector``.

    Args:
        names: Candidate interface names
        selector: Interface name or regular expression
        mode: "exact" for name equality, "regex" for an unanchored search

    Raises:
        InvalidSelectorError: If a regex selector does not compile
    """
    if mode == "exact":
        return [name for name in names if name == selector]
    try:
        pattern = re.compile(selector)
    except re.error as e:
        raise InvalidSelectorError(selector, str(e)) from e
    return [name for name in names if pattern.search(name)]
