"""
Logging for the verification service.

- Console: Rich on a terminal, one plain line per record otherwise
  (workers under uvicorn or a container). INFO, or DEBUG when DEBUG=1.
- File: logs/<YYYYMMDD>.log, always DEBUG, so rejected jobs can be traced
  step by step after the fact.

Every module logs through a child of the "gradeshield" logger:
    from gradeshield.logger import get_logger
    logger = get_logger(__name__)
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from .config import get_config
from .utils.timing import format_duration

ROOT_LOGGER = "gradeshield"

PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"


def _console_handler(level: int) -> logging.Handler:
    if sys.stdout.isatty():
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%H:%M:%S"))
    handler.setLevel(level)
    return handler


def setup_logger(
    name: str = ROOT_LOGGER,
    log_dir: Optional[Path] = None,
    debug: Optional[bool] = None,
    log_to_file: bool = True
) -> logging.Logger:
    """
    Attach console and file handlers to a logger, once.

    Args:
        name: Logger name (typically __name__)
        log_dir: Directory for the daily log file (default: Config.logs_dir)
        debug: Console at DEBUG level (default: Config.debug)
        log_to_file: Also write the daily DEBUG file
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    config = get_config()
    if debug is None:
        debug = config.debug
    if log_dir is None:
        log_dir = config.logs_dir

    # Handlers filter; the logger itself passes everything
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(_console_handler(logging.DEBUG if debug else logging.INFO))

    if log_to_file:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"{datetime.now():%Y%m%d}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    return logger


_loggers: dict[str, logging.Logger] = {}


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Cached setup_logger(name)."""
    if name not in _loggers:
        _loggers[name] = setup_logger(name)
    return _loggers[name]


def log_timing(logger: logging.Logger, operation: str, duration_sec: float) -> None:
    """Sub-second durations go to DEBUG, longer ones to INFO."""
    level = logging.DEBUG if duration_sec < 1 else logging.INFO
    logger.log(level, f"{operation}: {format_duration(duration_sec)}")
