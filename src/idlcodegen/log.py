"""Logging setup for the command-line tool."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "idlcodegen"


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> logging.Logger:
    """
    Route ``idlcodegen.*`` loggers through a single ``RichHandler``.

    Calling this again replaces the handler instead of stacking a second one.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
