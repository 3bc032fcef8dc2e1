"""
Logging setup for wifilink.

Every module logs through logging.getLogger(__name__), so all records land
under the "wifilink" logger. Lease machines and supplicant readers run in
threads named after their interface ("lease-wlan0", "supplicant-wlan0"),
which the format shows.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "wifilink"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def configure_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Attach handlers to the "wifilink" logger, replacing any from an earlier call.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names mean INFO
        log_file: Rotating log file, created along with its directory
        console_output: Also log to stderr

    Returns:
        The "wifilink" logger
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    if console_output:
        logger.addHandler(_handler(logging.StreamHandler(sys.stderr), level))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_handler(
            logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS),
            level))

    # Flask's request log is noise unless debugging
    if level > logging.DEBUG:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the "wifilink" logger (e.g. "cli")."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
