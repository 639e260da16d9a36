"""Logging setup for the expedition command line."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "expedition"
DEFAULT_LOG_FILE = Path("~/.expedition/logs/expedition.log").expanduser()
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(verbose: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """Attach a console handler and a rotating run log to the package logger.

    Every module logger from :func:`get_logger` sits under ``expedition`` and
    inherits both handlers. The console shows WARNING+ unless ``verbose``; the
    file always keeps INFO so a finished run can be traced poll by poll.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.INFO)
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    log_path = Path(log_file) if log_file else DEFAULT_LOG_FILE
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(log_path, maxBytes=1024 * 1024, backupCount=2,
                                       encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
