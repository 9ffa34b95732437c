"""Logging setup shared by the CLI and library users."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str | int = "WARNING", console: Console | None = None) -> None:
    """Route the ``chital`` logger hierarchy through a Rich handler.

    Safe to call more than once; the previous handler is replaced.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logger = logging.getLogger("chital")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
