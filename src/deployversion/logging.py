"""Logging setup for the deploy-version CLI."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "deployversion"


def configure_logging(verbose: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a single RichHandler to the package logger

    Calling it again only adjusts the level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if verbose else logging.WARNING
    logger.setLevel(level)

    handler = next((h for h in logger.handlers if isinstance(h, RichHandler)), None)
    if handler is None:
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    handler.setLevel(level)
    return logger
