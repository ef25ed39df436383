"""Shared logger initialization for the report pipeline and CLI.

Usage:
    from ofreport.utils.logger import get_logger
    log = get_logger(__name__)
    log.info("message")
"""
from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_FORMAT = "%(message)s"  # rich handler already adds time & level


def _level_from_env() -> int:
    name = os.getenv("OF_LOG_LEVEL", "WARNING").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(level: Optional[int] = None) -> None:
    """Idempotently configure the root logger with a rich handler on stderr."""
    root = logging.getLogger()
    if any(isinstance(h, RichHandler) for h in root.handlers):
        # Assume already configured
        return
    level = _level_from_env() if level is None else level
    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, markup=False)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.setLevel(level)
    root.addHandler(handler)


def get_logger(name: str = __name__, level: Optional[int] = None) -> logging.Logger:
    """Return a module-level logger (configuring root on first call)."""
    configure_logging()
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger
