"""Logger construction."""

from __future__ import annotations

import logging
import sys

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def new_logger(level: str) -> logging.Logger:
    """Build a logger writing key=value lines to stderr at the named level."""
    resolved = _LEVELS.get(level.strip().lower())
    if resolved is None:
        raise ValueError(f'unsupported log level "{level}"')
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("time=%(asctime)s level=%(levelname)s msg=%(message)s")
    )
    logger = logging.Logger("dnsvard", resolved)
    logger.propagate = False
    logger.addHandler(handler)
    return logger