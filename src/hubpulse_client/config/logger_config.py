"""Logger configuration for the HubPulse client."""

import sys
from typing import Optional

from loguru import logger

from .settings import LogConfig


def setup_logging(log_config: Optional[LogConfig] = None) -> None:
    """Configure loguru logger for console and file output.

    Sets up:
    - Colored console output at the configured level
    - Optional file output with rotation, retention and compression
    """
    log_config = log_config or LogConfig()

    # Remove default loguru handler
    logger.remove()

    if log_config.log_to_console:
        logger.add(
            sink=sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            level=log_config.log_level,
            colorize=True,
        )

    if log_config.log_to_file:
        logger.add(
            sink=str(log_config.log_file_path),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=log_config.log_level,
            rotation=log_config.log_rotation,
            retention=log_config.log_retention,
            compression="gz",
            enqueue=True,  # Thread-safe logging from dispatch workers
        )

        logger.info(f"File logging enabled: {log_config.log_file_path}")
        logger.info(f"Log level: {log_config.log_level}")
