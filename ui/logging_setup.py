"""Centralized logging configuration."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from .dashboard import console


def configure_logging(level: str = "WARNING") -> None:
    """Route all records through rich, on the dashboard's console."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))

    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    root_logger.addHandler(handler)
