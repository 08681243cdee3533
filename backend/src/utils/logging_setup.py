"""
Logging setup: one loguru stderr sink for the whole process.
"""

import sys

from loguru import logger


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}:{function}:{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = 'INFO', colorize: bool = True) -> None:
    """Replace loguru's default sink with one at the configured level"""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper(), colorize=colorize, catch=True)
