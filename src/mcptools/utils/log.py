"""Logging setup — rich-formatted records on stderr.

stdout belongs to the stdio transport, so every handler installed here
writes to stderr.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = ("uvicorn.access",)


def configure_logging(level: str | int = "INFO", *, console: Console | None = None) -> logging.Handler:
    """Install a :class:`RichHandler` on the root logger and return it.

    Calling this again replaces the previously installed handler instead of
    stacking a second one.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            msg = f"Unknown log level: {level}"
            raise ValueError(msg)
        level = resolved

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.set_name("mcptools")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "mcptools":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return handler
