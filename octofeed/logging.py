"""Logging setup for the feed process."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_NETWORK_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.websocket")


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Replace the root handlers with console (and optionally file) output.

    ``log_path`` adds a rotating file handler next to the console one.
    Unless ``log_network`` is set, aiohttp's own loggers stay at WARNING so
    socket frames do not flood the output.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=_FORMAT)
    logging.captureWarnings(True)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3)
        file_handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(file_handler)

    network_level = resolved if log_network else logging.WARNING
    for name in _NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
