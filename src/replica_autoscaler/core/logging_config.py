#!/usr/bin/env python3
"""
Logging setup for the autoscaler service

Cycles run on the scheduler's "evaluation" threads, so every format
carries the thread name next to the logger name.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = ("%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - "
               "%(module)s:%(funcName)s:%(lineno)d - %(message)s")

# Client libraries log every request at INFO/DEBUG
QUIET_LOGGERS = ("requests", "urllib3", "kubernetes", "uvicorn.access")


class ColoredFormatter(logging.Formatter):
    """Colors the level name of console records"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        # Other handlers share the record, so the level name is restored afterwards
        levelname = record.levelname
        color = self.COLORS.get(levelname, self.RESET)
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _attach(root: logging.Logger, handler: logging.Handler, level: int,
            formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None,
                  enable_colors: bool = True) -> None:
    """
    Replace the root handlers with a console handler and an optional file handler

    Args:
        level: Level name; unknown names fall back to INFO
        log_file: File that receives the detailed format (parent directories are created)
        enable_colors: Color level names on the console
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_formatter = ColoredFormatter(CONSOLE_FORMAT) if enable_colors else logging.Formatter(CONSOLE_FORMAT)
    _attach(root, logging.StreamHandler(sys.stdout), numeric_level, console_formatter)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        _attach(root, logging.FileHandler(path), numeric_level, logging.Formatter(FILE_FORMAT))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured at {logging.getLevelName(numeric_level)}"
        + (f", writing to {log_file}" if log_file else "")
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_separator(logger: logging.Logger, title: str, width: int = 60) -> None:
    """Log a framed title line, used to mark the start of an evaluation cycle"""
    logger.info("=" * width)
    logger.info(title.center(width))
    logger.info("=" * width)


def log_section(logger: logging.Logger, title: str) -> None:
    """Log a section header inside a cycle"""
    logger.debug(f"--- {title} ---")
