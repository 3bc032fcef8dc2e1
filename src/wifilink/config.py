import logging
import os
from dataclasses import dataclass, fields, replace

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), '..', '..', 'config.yaml')

INTERFACE_MATCH_MODES = ('regex', 'exact')
UNLIMITED_RETRIES = -1


@dataclass(frozen=True)
class Settings:
    interface: str = 'wlan0'
    interface_match: str = 'regex'
    profile_path: str = '/tmp/wifi.conf'
    supplicant: str = 'wpa_supplicant'
    dhclient: str = 'dhclient'
    connect_timeout: float = 30.0
    dhcp_timeout: float = 15.0
    dhcp_retries: int = 5
    dhcp_retry_delay: float = 1.0
    renewal_margin: float = 10.0
    log_level: str = 'INFO'
    log_file: str | None = None
    web_port: int = 8080


def _resolve_path(path: str | None) -> str:
    cfg_path = path or os.environ.get(
        'WIFILINK_CONFIG') or DEFAULT_CONFIG_PATH
    return os.path.abspath(os.path.expanduser(cfg_path))


def load_config(path: str | None = None) -> dict:
    cfg_path = _resolve_path(path)
    if not os.path.exists(cfg_path):
        return {}
    with open(cfg_path, 'r', encoding='utf-8') as fh:
        return yaml.safe_load(fh) or {}


def load_settings(path: str | None = None, **overrides) -> Settings:
    """Build Settings from the ``wifilink`` section of the config file.

    Keyword overrides (typically CLI flags) win over file values; ``None``
    overrides are ignored.
    """
    section = load_config(path).get('wifilink') or {}
    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in section.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        values[key] = value
    values.update({k: v for k, v in overrides.items() if v is not None})

    settings = replace(Settings(), **values)
    if settings.interface_match not in INTERFACE_MATCH_MODES:
        raise ValueError(
            f"interface_match must be one of {INTERFACE_MATCH_MODES}, "
            f"got {settings.interface_match!r}")
    if settings.dhcp_retries == 0 or settings.dhcp_retries < UNLIMITED_RETRIES:
        raise ValueError(
            f"dhcp_retries must be positive or {UNLIMITED_RETRIES}, "
            f"got {settings.dhcp_retries}")
    return settings
