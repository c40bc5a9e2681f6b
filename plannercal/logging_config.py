"""
Central logging configuration for plannercal.

Installs a colorized console handler and quiets the HTTP and iCalendar
libraries so that pipeline progress lines stay readable.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

# Third-party libraries that generate excessive debug logs
NOISY_LOGGERS = ("httpx", "httpcore", "icalendar")


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging for plannercal.

    Args:
        debug_mode: Whether to enable debug logging for plannercal modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        PLANNERCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        PLANNERCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("PLANNERCAL_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("PLANNERCAL_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Only add a handler if none exist, to avoid duplicate output
    if not root_logger.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
        root_logger.addHandler(handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("plannercal").setLevel(logging.DEBUG if final_debug else root_level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(root_level)
    )


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("plannercal", *NOISY_LOGGERS):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
