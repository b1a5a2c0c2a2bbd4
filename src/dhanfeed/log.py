"""Logging setup — loguru sink plus a bridge for stdlib loggers."""

from __future__ import annotations

import logging
import sys
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

_BRIDGED_LOGGERS = ("websockets", "urllib3")


class _LoguruHandler(logging.Handler):
    """Forward stdlib log records (websockets, urllib3) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Any = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


_bridge_installed = False


def install_logging_bridge(level: int = logging.WARNING) -> None:
    """Route third-party stdlib loggers through loguru once."""
    global _bridge_installed
    if _bridge_installed:
        return
    handler = _LoguruHandler()
    for name in _BRIDGED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.setLevel(level)
        std_logger.addHandler(handler)
        std_logger.propagate = False
    _bridge_installed = True


def configure_logging(level: str = "INFO", sink: Any = None) -> int:
    """Replace loguru's default sink with one at ``level``.

    Returns the loguru handler id so callers can remove it again.
    """
    logger.remove()
    handler_id = logger.add(sink or sys.stderr, level=level.upper(), format=LOG_FORMAT)
    install_logging_bridge()
    return handler_id
