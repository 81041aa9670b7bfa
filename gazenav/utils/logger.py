"""
Logging setup for GazeNav.

Console output by default; a log file only when explicitly enabled.
Nothing is ever sent off the machine.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _file_handler(log_file: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str,
    level: str = "WARNING",
    log_file: Optional[Path] = None,
    enable_file_logging: bool = False,
) -> logging.Logger:
    """
    Configure the package logger.

    Calling it again only updates the level; handlers are added once.

    Args:
        name: Logger name (normally "gazenav")
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Log file path, used when file logging is enabled
        enable_file_logging: Also write to ``log_file``

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    logger.setLevel(numeric_level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(numeric_level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if enable_file_logging and log_file:
        try:
            logger.addHandler(_file_handler(Path(log_file), numeric_level, formatter))
            logger.info(f"Logging to {log_file}")
        except OSError as e:
            logger.warning(f"File logging unavailable: {e}")

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Module logger, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
