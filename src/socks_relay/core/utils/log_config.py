"""Logging configuration for the relay server.

This module provides centralized logging configuration using Loguru.
It sets up logging to both console and a rotating file with proper
formatting.
"""

import sys
from pathlib import Path

from loguru import logger

LOG_DIR = Path.home() / ".socks-relay" / "logs"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(debug: bool = False, log_dir: Path | None = LOG_DIR) -> None:
    """Replace Loguru's default handler with console and file sinks.

    Args:
        debug: Log DEBUG records to the console as well
        log_dir: Directory of the rotating log file, None for console only
    """
    logger.remove()  # Remove default handler

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level="DEBUG" if debug else "INFO",
        backtrace=True,
        diagnose=debug,
    )

    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / "proxy.log",
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        format=FILE_FORMAT,
        level="DEBUG",
        backtrace=True,
        diagnose=False,
        enqueue=True,
    )


__all__ = ["configure_logging", "logger", "LOG_DIR"]
