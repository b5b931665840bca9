"""Shared logger for the store assistant backend.

Every module logs through the "woogenie" logger (or a child of it). The level
comes from LOG_LEVEL and defaults to INFO.
"""
import logging
import os
from typing import Optional

ROOT_LOGGER_NAME = "woogenie"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger(ROOT_LOGGER_NAME)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the app logger, or its child `woogenie.<name>`."""
    if name:
        return logger.getChild(name)
    return logger
