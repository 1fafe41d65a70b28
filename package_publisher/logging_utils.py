"""Logging configuration for the command-line entry point."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "package_publisher"


def configure_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Route package logs through a single RichHandler.

    Replaces any handler installed by a previous call, so it is safe to call
    more than once.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        show_time=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
