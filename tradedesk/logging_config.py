"""Logger setup shared by every ``tradedesk.*`` module.

Loggers write to stdout with one pipe-separated line per record. The level
starts from ``TRADEDESK_LOG_LEVEL`` and follows `set_log_level` afterwards.
"""
from __future__ import annotations

import logging
import sys

from .config import env_log_level

ROOT_LOGGER = "tradedesk"

_level = env_log_level()
_loggers: dict[str, logging.Logger] = {}


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(_resolve_level(_level))
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    logger.propagate = False
    _loggers[name] = logger
    return logger


def set_log_level(level: str) -> None:
    """Apply ``level`` to every logger created here and to later ones."""
    global _level
    _level = str(level).upper()
    for logger in _loggers.values():
        logger.setLevel(_resolve_level(_level))
