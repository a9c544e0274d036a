"""
Shared logging setup.

Usage:
    import lenscal.logger
    logger = lenscal.logger.get(__name__)
"""

import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DEFAULT_LEVEL = os.environ.get("LENSCAL_LOG_LEVEL", "INFO")

_handler = None


def _shared_handler() -> logging.Handler:
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return _handler


def get(name: str) -> logging.Logger:
    """Return a module logger wired to the shared lenscal handler."""
    root = logging.getLogger("lenscal")
    if _shared_handler() not in root.handlers:
        root.addHandler(_shared_handler())
        root.setLevel(DEFAULT_LEVEL.upper())
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Change the level for every lenscal logger."""
    logging.getLogger("lenscal").setLevel(level.upper())
