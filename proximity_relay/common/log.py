"""Debug logging to file (doesn't interfere with the console)."""

from __future__ import annotations

import logging

from .constants import LOG_FILE

_ROOT = "proximity_relay"
_handler: logging.Handler | None = None


def configure(log_file: str = LOG_FILE, level: int = logging.DEBUG) -> None:
    """Route all relay loggers to ``log_file``. Replaces any earlier handler."""
    global _handler
    root = logging.getLogger(_ROOT)
    if _handler is not None:
        root.removeHandler(_handler)
        _handler.close()
    _handler = logging.FileHandler(log_file)
    _handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(message)s"))
    root.addHandler(_handler)
    root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger, attaching the default file handler on first use."""
    if _handler is None:
        configure()
    return logging.getLogger(name)
