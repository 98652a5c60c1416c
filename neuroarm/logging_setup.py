"""
Loguru configuration: console output plus a rotating file per run.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logger(
    log_dir: Optional[Union[str, Path]] = "logs",
    level: str = "INFO",
    rotation: str = "50 MB",
    retention: str = "30 days",
) -> Optional[Path]:
    """
    Replace loguru's default sink with a console sink and, if log_dir is
    given, a file sink.

    Args:
        log_dir: Directory for log files (None for console only)
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        rotation: Log rotation policy (e.g. "50 MB", "1 day")
        retention: Log retention policy (e.g. "30 days")

    Returns:
        Path to the log file, or None
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=CONSOLE_FORMAT,
        colorize=sys.stderr.isatty(),
    )

    if log_dir is None:
        return None

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"evolution_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    logger.add(
        log_file,
        level=level,
        format=FILE_FORMAT,
        rotation=rotation,
        retention=retention,
        encoding="utf-8",
        backtrace=True,
        diagnose=False,
    )
    logger.debug(f"Logging to {log_file} at level {level}")
    return log_file
