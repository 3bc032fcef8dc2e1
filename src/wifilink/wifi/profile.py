"""
wpa_supplicant network block generation.

Three shapes are produced: an open network, a WPA personal (PSK) network
whose key is derived from the passphrase, and a WPA enterprise network that
carries identity and password in plaintext as the EAP exchange requires.
"""

import hashlib
from typing import Callable

from wifilink.errors import InvalidArgumentCountError, InvalidPassphraseError

OPEN_TEMPLATE = """network={{
\tssid="{ssid}"
\tproto=RSN
\tkey_mgmt=NONE
}}
"""

PSK_TEMPLATE = """network={{
\tssid="{ssid}"
\tpsk={psk}
}}
"""

EAP_TEMPLATE = """network={{
\tssid="{ssid}"
\tkey_mgmt=WPA-EAP
\tidentity="{identity}"
\tpassword="{password}"
}}
"""

MIN_PASSPHRASE_LEN = 8
MAX_PASSPHRASE_LEN = 63
PSK_ITERATIONS = 4096
PSK_LENGTH = 32

PassphraseDeriver = Callable[[str, str], str]


def derive_psk(ssid: str, passphrase: str) -> str:
    """
    Derive the 256-bit WPA pre-shared key for a passphrase (IEEE 802.11i H.4).

    Args:
        ssid: Network SSID, used as the salt
        passphrase: 8 to 63 printable ASCII characters

    Returns:
        The key as 64 lowercase hex digits

    Raises:
        InvalidPassphraseError: If the passphrase length is out of range
    """
    if not MIN_PASSPHRASE_LEN <= len(passphrase) <= MAX_PASSPHRASE_LEN:
        raise InvalidPassphraseError(
            f"{ssid}: passphrase must be {MIN_PASSPHRASE_LEN} to "
            f"{MAX_PASSPHRASE_LEN} characters, got {len(passphrase)}")
    key = hashlib.pbkdf2_hmac(
        'sha1', passphrase.encode('utf-8'), ssid.encode('utf-8'),
        PSK_ITERATIONS, PSK_LENGTH)
    return key.hex()


def generate_profile(ssid: str, *secrets: str,
                     deriver: PassphraseDeriver = derive_psk) -> str:
    """
    Build a network block for ``ssid``.

    Args:
        ssid: Network SSID
        secrets: (), (passphrase,) or (passphrase, identity)
        deriver: Passphrase-to-key transform used for the PSK shape

    Returns:
        Profile text ready to be handed to wpa_supplicant

    Raises:
        InvalidArgumentCountError: For any other number of secrets
    """
    if len(secrets) == 0:
        return OPEN_TEMPLATE.format(ssid=ssid)
    if len(secrets) == 1:
        return PSK_TEMPLATE.format(ssid=ssid, psk=deriver(ssid, secrets[0]))
    if len(secrets) == 2:
        password, identity = secrets
        return EAP_TEMPLATE.format(ssid=ssid, identity=identity, password=password)
    raise InvalidArgumentCountError(
        f"profile needs an SSID and 0, 1 or 2 secrets, got {len(secrets)} secrets")
