"""
Loguru sink configuration
"""

import sys
from pathlib import Path

from loguru import logger

from transcribe_api.config import Settings


def setup_logging(settings: Settings) -> None:
    """Replace the default sink with stderr + optional rotating file sink."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, enqueue=True)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            rotation="10 MB",
            retention=10,
            level=settings.log_level,
            enqueue=True,
        )
