"""Logging setup for the ekamdash CLI."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Install a Rich handler on the ``ekamdash`` logger.

    Parameters
    ----------
    level:
        Level name (``"DEBUG"``) or number applied to the logger.

    Returns
    -------
    logging.Logger
        The configured package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("ekamdash")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False

    return logger
