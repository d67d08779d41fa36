"""Logging helpers for the console core."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from console_core.config import load_settings

_logger = logging.getLogger(__name__)

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def configure_logging() -> None:
    """Configure process-wide logging from settings."""
    settings = load_settings()
    level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    handlers.append(stream_handler)

    if settings.logging.file:
        try:
            Path(settings.logging.file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(settings.logging.file)
            file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
            handlers.append(file_handler)
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.logging.file, exc)

    logging.basicConfig(level=level, handlers=handlers, force=True)
