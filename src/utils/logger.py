"""
Logging setup shared by the registrar adapters, workflows and CLI

Each module asks for ``get_logger(__name__)``. Records go to a coloured
console stream and to a daily file under logs/ that always keeps DEBUG
detail, so a failed registration can be traced after the fact.
"""

import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

import colorlog


LOGS_DIR = Path("logs")

# Loggers that set_log_level() retunes at runtime
PROJECT_PREFIXES = ("src", "__main__", "main")

_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name}")
    return level


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(levelname)-8s%(reset)s %(blue)s[%(name)s]%(reset)s %(message)s",
        log_colors=_COLORS,
    ))
    return handler


def _file_handler(file_name: str) -> logging.Handler:
    LOGS_DIR.mkdir(exist_ok=True)
    handler = logging.FileHandler(LOGS_DIR / file_name, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    return handler


def get_logger(name: str, level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Return the named logger, attaching handlers the first time it is seen.

    Args:
        name: Usually the calling module's ``__name__``
        level: Console threshold until ``set_log_level`` changes it
        log_file: File under logs/; defaults to registrar_<YYYY-MM-DD>.log
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    numeric = _level(level)
    logger.setLevel(numeric)
    logger.addHandler(_console_handler(numeric))
    logger.addHandler(_file_handler(log_file or f"registrar_{date.today().isoformat()}.log"))
    return logger


def set_log_level(level: str) -> None:
    """Apply a console level to every project logger created so far"""
    numeric = _level(level)
    for name, logger in list(logging.root.manager.loggerDict.items()):
        if not isinstance(logger, logging.Logger) or not name.startswith(PROJECT_PREFIXES):
            continue
        logger.setLevel(numeric)
        for handler in logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(numeric)
