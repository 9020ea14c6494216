import os
import sys

from loguru import logger

from reachretry.core.constants import LOG_FILE, LOG_LEVEL, TMPDIR

# Configure logger
logger.remove()  # Remove default handler

# Add stderr handler only if available (not in windowed exe)
if sys.stderr:
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=LOG_LEVEL,
    )

# Add file handler
os.makedirs(TMPDIR, exist_ok=True)
logger.add(
    LOG_FILE,
    rotation="1 MB",
    retention="10 days",
    format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    level=LOG_LEVEL,
)


def get_logger():
    return logger


def set_level(level: str) -> None:
    """Re-register the stderr sink at a different level (used by the CLI)."""
    logger.remove()
    if sys.stderr:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
            level=level.upper(),
        )
    logger.add(
        LOG_FILE,
        rotation="1 MB",
        retention="10 days",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
    )
