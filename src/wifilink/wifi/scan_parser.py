"""
Parsers for Linux wireless-tools output.

Example output from 'iwlist wlan0 scanning':
wlan0     Scan completed :
          Cell 01 - Address: 00:11:22:33:44:55
                    Channel:6
                    Encryption key:on
                    ESSID:"MyWiFi"
                    IE: IEEE 802.11i/WPA2 Version 1
                        Group Cipher : CCMP
                        Pairwise Ciphers (1) : CCMP
                        Authentication Suites (1) : PSK

Assumptions made about that output:
    1) Cell, ESSID and encryption key lines match up one to one, in order
    2) Only IEEE 802.11i/WPA2 Version 1 is supported
    3) Each network advertises one authentication suite that matters
"""

import logging
import re
from typing import List

from wifilink.errors import ScanParseError
from wifilink.wifi.adapter import NetworkRecord, SecurityKind

logger = logging.getLogger(__name__)

# iwlist
CELL_RE = re.compile(r'^\s*Cell', re.MULTILINE)
ESSID_RE = re.compile(r'^\s*ESSID.*', re.MULTILINE)
ENC_KEY_RE = re.compile(r'^\s*Encryption key:(on|off)\s*$', re.MULTILINE)
WPA2_RE = re.compile(r'^\s*IE: IEEE 802\.11i/WPA2 Version 1\s*$', re.MULTILINE)
AUTH_SUITES_RE = re.compile(r'^\s*Authentication Suites.*?:(.*)$', re.MULTILINE)

# iwconfig
IWCONFIG_RE = re.compile(r'^[a-zA-Z0-9]+\s*IEEE 802\.11.*$', re.MULTILINE)

AUTH_SUITE_KINDS = {
    'PSK': SecurityKind.WPA_PSK,
    '802.1x': SecurityKind.WPA_EAP,
}


def _field_value(line: str) -> str:
    """Value after the first ':' with quotes and whitespace removed."""
    _, _, value = line.partition(':')
    return value.strip().strip('"')


def _classify_window(window: str) -> SecurityKind:
    """Classify an encrypted cell from its own slice of the scan text."""
    wpa2 = WPA2_RE.search(window)
    if wpa2 is None:
        return SecurityKind.UNSUPPORTED

    suites = AUTH_SUITES_RE.search(window, wpa2.start())
    if suites is None:
        return SecurityKind.UNSUPPORTED
    return AUTH_SUITE_KINDS.get(suites.group(1).strip(), SecurityKind.UNSUPPORTED)


def parse_scan(output: str) -> List[NetworkRecord]:
    """
    Parse 'iwlist <interface> scanning' output.

    Args:
        output: Raw scan text

    Returns:
        NetworkRecords in scan order; the first cell seen for an SSID wins

    Raises:
        ScanParseError: If ESSID or encryption lines do not match cells one to one
    """
    cells = [m.start() for m in CELL_RE.finditer(output)]
    if not cells:
        return []

    essids = ESSID_RE.findall(output)
    enc_keys = ENC_KEY_RE.findall(output)
    if len(essids) != len(cells) or len(enc_keys) != len(cells):
        raise ScanParseError(
            f"scan output has {len(cells)} cells but {len(essids)} ESSID "
            f"and {len(enc_keys)} encryption key lines")

    records = []
    seen = set()
    for i, start in enumerate(cells):
        ssid = _field_value(essids[i])
        if ssid in seen:
            continue
        seen.add(ssid)

        if enc_keys[i] == 'off':
            records.append(NetworkRecord(ssid, SecurityKind.OPEN))
            continue

        end = cells[i + 1] if i + 1 < len(cells) else len(output)
        records.append(NetworkRecord(ssid, _classify_window(output[start:end])))

    logger.debug(f"Parsed {len(records)} networks from {len(cells)} cells")
    return records


def parse_interfaces(output: str) -> List[str]:
    """Interface names from 'iwconfig' output (wireless interfaces only)."""
    return [line.split()[0] for line in IWCONFIG_RE.findall(output)]
