"""Logging configuration helpers for the project."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}:{function}:{line}</cyan> | <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process}:{thread} | "
    "{name}:{function}:{line} | {message}"
)


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Send diagnostics to stderr and, if ``log_file`` is set, to a rotating file."""
    level = (level or "INFO").upper()
    logger.remove()
    logger.add(sink=sys.stderr, format=CONSOLE_FORMAT, level=level)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            rotation="1 MB",
            retention=10,
            compression="zip",
            level=level,
            format=FILE_FORMAT,
        )
