"""
Scratch storage for supplicant profiles.
Profiles may hold enterprise credentials in plaintext, so the file is kept
owner-only.
"""

import logging
import os
import stat
from pathlib import Path

from wifilink.errors import WifiError

logger = logging.getLogger(__name__)


class ProfileStore:
    """Writes the profile for the current connection attempt."""

    # Default file mode: read/write for owner only (0o600)
    DEFAULT_FILE_MODE = stat.S_IRUSR | stat.S_IWUSR

    def __init__(self, profile_path: str = "/tmp/wifi.conf"):
        """
        Args:
            profile_path: Well-known path the supplicant reads the profile from
        """
        self.profile_path = Path(profile_path)

    def write(self, profile: str) -> Path:
        """
        Replace the stored profile.

        Returns:
            Path the profile was written to

        Raises:
            WifiError: If the file cannot be written
        """
        try:
            self.profile_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.profile_path,
                         os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
                         self.DEFAULT_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(profile)
            # O_CREAT's mode does not apply to a file that already existed
            os.chmod(self.profile_path, self.DEFAULT_FILE_MODE)
        except OSError as e:
            raise WifiError(f"{self.profile_path}: {e}") from e

        logger.debug(f"Profile written to {self.profile_path} with mode 0o600")
        return self.profile_path

