"""Loguru setup shared by the API server and the sync client."""
from __future__ import annotations

import sys

from loguru import logger

from notesync import config

_configured = False


def setup_logging(level: str | None = None, force: bool = False) -> None:
    """Route loguru output to stderr at the configured level.

    Safe to call more than once; later calls are ignored unless `force` is set.
    """
    global _configured
    if _configured and not force:
        return

    logger.remove()
    logger.configure(extra={"module": "notesync"})
    logger.add(
        sys.stderr,
        level=level or config.log_level(),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[module]} | {message}",
    )
    _configured = True
