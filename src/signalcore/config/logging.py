"""Logging configuration for the engine and its scheduler."""

import logging
import sys
from typing import Optional

from .settings import get_settings

# Third-party loggers that are chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "yfinance", "peewee")


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure pipe-separated logging to stdout.

    Args:
        level: Level name overriding Settings.LOG_LEVEL

    Returns:
        The ``signalcore`` package logger
    """
    log_level = (level or get_settings().LOG_LEVEL).upper()

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger("signalcore")
    logger.setLevel(log_level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the signalcore namespace, e.g. ``get_logger("scanner")``."""
    return logging.getLogger(f"signalcore.{name}")
