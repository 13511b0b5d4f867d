"""Logging setup shared by CLI commands."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Route all ``logging`` output through a single RichHandler.

    Unknown level names fall back to INFO.  Safe to call more than once;
    existing root handlers are replaced.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    logging.basicConfig(
        level=numeric,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )
    # httpx logs every request at INFO; probes would drown the timeline.
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
