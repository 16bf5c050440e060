"""
Logging initialization.

Configures loguru sinks for the sync worker: stderr at the configured
level plus a daily-rotated file.
"""

import sys

from loguru import logger

from memberchain.config.settings import Settings


def setup_logging(settings: Settings) -> None:
    """Configure logger with file rotation."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
        enqueue=True,
    )

    logger.info(f"Starting memberchain sync worker ({settings.environment})...")
