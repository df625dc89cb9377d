"""
Central logging configuration for dashcal.

Installs a colorized console handler and keeps third-party HTTP and iCalendar
libraries quiet, so that per-source fetch warnings stay readable.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

# HH:MM:SS  LEVEL   logger.name: message
LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Third-party loggers and the level they are held at
NOISY_LOGGERS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def _env_debug() -> bool:
    return os.getenv("DASHCAL_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure console logging for dashcal.

    Debug mode can be forced from the environment for troubleshooting without
    code changes.

    Args:
        debug_mode: Whether to enable debug logging for dashcal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        DASHCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        DASHCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    if force_debug is not None:
        final_debug = force_debug
    elif _env_debug():
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    env_log_level = os.getenv("DASHCAL_LOG_LEVEL", "").upper()
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Only install a handler if none exist to avoid duplicate output
    if not root_logger.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS))
        root_logger.addHandler(handler)

    for logger_name, level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger("dashcal").setLevel(logging.DEBUG if final_debug else logging.INFO)

    logging.getLogger(__name__).debug(
        "Logging configured: root=%s, debug=%s", logging.getLevelName(root_level), final_debug
    )
