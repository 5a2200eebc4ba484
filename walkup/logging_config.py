"""
Centralized logging configuration for walkup
Handles logging setup and provides convenience functions
"""

import logging
import sys
from typing import Optional

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Levels accepted by AppConfig.log_level
LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "silent": logging.CRITICAL + 10,
}

_logging_initialized = False


def resolve_level(level: Optional[str]) -> int:
    """Map a configured level name to a logging level (default: INFO)"""
    if not level:
        return logging.INFO
    try:
        return LOG_LEVELS[level.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown log level '{level}'. Supported levels: {', '.join(LOG_LEVELS)}"
        ) from None


def setup_logging(level: Optional[str] = None, force: bool = False) -> None:
    """
    Set up the package logger with a single stdout handler

    Args:
        level: One of debug, info, warn, error, silent (default: info)
        force: Re-apply the configuration even if logging was already set up
    """
    global _logging_initialized
    if _logging_initialized and not force:
        return

    package_logger = logging.getLogger("walkup")
    package_logger.setLevel(resolve_level(level))
    package_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    package_logger.addHandler(console_handler)

    # Keep HTTP client chatter out of the application log
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _logging_initialized = True
    package_logger.debug(f"Logging initialized - level: {level or 'info'}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    return logging.getLogger(name)
