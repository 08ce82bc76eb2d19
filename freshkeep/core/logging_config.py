"""Logging setup for freshkeep — stdlib only."""

from __future__ import annotations

import logging
import os
import sys

_CONFIGURED = False
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_log_level(level_name: str | None = None) -> int:
    """Map a level name (or ``FRESHKEEP_LOG_LEVEL``) to a logging level, WARNING if unknown."""
    name = (level_name or os.getenv("FRESHKEEP_LOG_LEVEL", "WARNING")).strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(level_name: str | None = None, force: bool = False) -> logging.Logger:
    """Attach a single stderr handler to the ``freshkeep`` logger.

    Runs once per process unless ``force`` is set, in which case the level is
    re-read and applied to the existing handler.
    """
    global _CONFIGURED
    package_logger = logging.getLogger("freshkeep")
    if _CONFIGURED and not force:
        return package_logger
    _CONFIGURED = True

    level = resolve_log_level(level_name)
    package_logger.setLevel(level)

    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        package_logger.addHandler(handler)
    for handler in package_logger.handlers:
        handler.setLevel(level)
    return package_logger
