"""Logging setup for the ``katalist`` logger."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "katalist"

logger = logging.getLogger(LOGGER_NAME)


def configure_logging(debug: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a rich handler to the package logger and set its verbosity.

    Only the ``katalist`` logger is touched; the root logger is left to the
    application. Calling this again just updates the level.
    """
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    return logger
