"""Loguru logging configuration"""

import sys

from loguru import logger


def setup_logging(level: str = "INFO", log_format: str = "pretty") -> None:
    """Configure loguru for the application."""
    logger.remove()

    if log_format == "json":
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
        return

    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        level=level,
        colorize=True,
    )


log = logger
