"""
Loguru sink configuration.

Console output is colourised; when a log directory is configured, all records
also go to a JSON ``combined.log`` and errors to ``error.log``.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Replace the default loguru sink with the service sinks"""
    logger.remove()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if not log_dir:
        return

    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)

    logger.add(
        path / "combined.log",
        level=level,
        serialize=True,
        rotation="5 MB",
        retention=5,
        enqueue=True,
    )
    logger.add(
        path / "error.log",
        level="ERROR",
        serialize=True,
        rotation="5 MB",
        retention=5,
        backtrace=True,
        enqueue=True,
    )
    logger.debug(f"File logging enabled in {path.resolve()}")
