"""
Logging configuration.

Configures loguru sinks for workers and scripts.
Sets up log rotation and retention policies.
"""

import sys

from loguru import logger

from app.config.settings import settings


def setup_logging(level: str | None = None, log_file: str | None = "logs/rewards.log") -> None:
    """
    Configure logger with stderr and rotating file sinks.

    Args:
        level: Minimum level (defaults to settings.log_level)
        log_file: File sink path, or None to log to stderr only
    """
    level = level or settings.log_level

    logger.remove()
    logger.add(sys.stderr, level=level, backtrace=settings.debug)

    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=level,
            encoding="utf-8",
            enqueue=True,
        )

    logger.info(
        "Logging configured",
        extra={"level": level, "environment": settings.environment},
    )
