"""
Logging setup: one console handler plus a debug.log file handler.

Both use "timestamp | level | name | message". The file always records
DEBUG; the console shows INFO (DEBUG with verbose=True).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

_configured = False


def setup_logging(log_file: Optional[str] = "debug.log", verbose: bool = False) -> logging.Logger:
    """
    Configure the "mapchat" logger tree. Safe to call more than once.
    """
    global _configured
    logger = logging.getLogger("mapchat")
    if _configured:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _configured = True
    return logger
