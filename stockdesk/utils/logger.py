"""Logging setup for StockDesk."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LoggingConfig, get_config

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    settings: Optional[LoggingConfig] = None,
):
    """Replace loguru's handlers with the configured console and file sinks.

    Args:
        log_level: Overrides the configured level
        log_file: Overrides the configured file, empty string disables it
        settings: Logging section to use instead of the global config
    """
    settings = settings or get_config().logging
    level = log_level or settings.level
    path = settings.file if log_file is None else log_file

    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if path:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            path,
            format=FILE_FORMAT,
            level=level,
            rotation=settings.rotation,
            retention=settings.retention,
            compression=settings.compression or None,
        )

    logger.info(f"Logging initialized at {level} level" + (f", writing to {path}" if path else ""))
