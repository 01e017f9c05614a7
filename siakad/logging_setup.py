"""Loguru sink configuration shared by the CLI and the background watcher."""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{function} - {message}"


def configure_logging(level: str = "INFO", fmt: str = LOG_FORMAT) -> None:
    """Replace the default loguru sink with a stderr sink at ``level``."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=fmt)
