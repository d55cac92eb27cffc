"""Logging setup shared by the API app and the scripts."""
from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(level: str | int | None = None, *, force: bool = False) -> None:
    """Configure the root logger for console output.

    ``level`` defaults to ``FOLIO_LOG_LEVEL`` and then INFO. When handlers already
    exist only the level is changed unless ``force`` is set.
    """
    try:
        resolved = _coerce_level(level if level is not None else os.getenv("FOLIO_LOG_LEVEL", "INFO"))
    except ValueError:
        resolved = logging.INFO

    root = logging.getLogger()
    if root.handlers and not force:
        root.setLevel(resolved)
        return
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=force)
