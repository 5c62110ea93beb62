"""Logging setup for the probe CLI."""
from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"

_configured = False


def setup_logging(debug: bool = False) -> logging.Logger:
    """Attach a single stderr handler to the `probe` logger.

    Args:
        debug: log at DEBUG instead of WARNING

    Returns:
        The package logger
    """
    global _configured
    logger = logging.getLogger("probe")
    level = logging.DEBUG if debug else logging.WARNING
    logger.setLevel(level)

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False  # Prevent duplicate logs
        _configured = True

    for handler in logger.handlers:
        handler.setLevel(level)
    return logger
