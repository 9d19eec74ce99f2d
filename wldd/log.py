from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "WARNING") -> None:
    """Route the wldd loggers to stderr through rich."""
    logger = logging.getLogger("wldd")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    logger.propagate = False
    # Prevent duplicate handlers on repeated CLI invocations in one process
    logger.handlers.clear()
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        show_time=False,
        rich_tracebacks=True,
        markup=False,
    )
    logger.addHandler(handler)
