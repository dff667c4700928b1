"""Logging configuration for the local tunnel proxy.

This module provides centralized logging configuration using Loguru.
It sets up logging to both file and console with proper formatting
and log rotation.
"""

import sys
from pathlib import Path

from loguru import logger

# Create logs directory in user's home directory
LOG_DIR = Path.home() / ".upstream-tunnel-proxy" / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(console_level: str = "INFO") -> None:
    """(Re)install the console and rotating file sinks."""
    logger.remove()  # Remove default handler

    # Add console handler with custom format
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=console_level,
        backtrace=True,
        diagnose=True,
    )

    # Add file handler with rotation
    logger.add(
        LOG_DIR / "proxy.log",
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        format=FILE_FORMAT,
        level="DEBUG",
        backtrace=True,
        diagnose=True,
    )


configure_logging()

__all__ = ["configure_logging", "logger", "LOG_DIR"]
