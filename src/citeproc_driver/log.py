"""Logging helpers.

Library modules obtain loggers through :func:`get_logger` and never install
handlers themselves. Hosts (the CLI and the web service) call
:func:`configure_logging` once at startup.
"""
from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "citeproc_driver"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(level: str = "INFO") -> None:
    """Send driver logs to the console through rich."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    handler = RichHandler(
        console=Console(stderr=True), show_time=True, show_path=False, rich_tracebacks=True
    )
    logger.addHandler(handler)
    logger.propagate = False
