"""Logging setup for the cloudlayout CLI and web app."""
from __future__ import annotations

import logging
import os
from typing import Optional

LOG_LEVEL_ENV = "CLOUDLAYOUT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_handler: Optional[logging.Handler] = None


def resolve_level(level: Optional[str] = None) -> int:
    level_name = (level or os.getenv(LOG_LEVEL_ENV, "WARNING")).upper()
    resolved = logging.getLevelName(level_name)
    if not isinstance(resolved, int):
        return logging.WARNING
    return resolved


def configure_logging(level: Optional[str] = None) -> int:
    """Install one stderr handler on the root logger and return the level used."""
    global _handler
    resolved = resolve_level(level)
    root = logging.getLogger()
    root.setLevel(resolved)
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    if _handler not in root.handlers:
        root.addHandler(_handler)
    _handler.setLevel(resolved)
    return resolved
