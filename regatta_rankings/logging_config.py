from __future__ import annotations

import sys

from loguru import logger

from regatta_rankings.config import Settings, get_settings


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=settings.log_level.upper())
    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="1 day",
            retention="30 days",
            level="DEBUG",
        )
