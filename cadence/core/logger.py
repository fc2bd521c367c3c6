"""
Logging setup shared by all modules.

Usage:
    from cadence.core.logger import setup_logger
    logger = setup_logger(__name__)
"""

import logging
import sys

from cadence.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _resolve_level() -> int:
    settings = get_settings()
    if settings.DEBUG:
        return logging.DEBUG
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str) -> logging.Logger:
    """
    Get a logger with the application handler attached.

    Handlers are attached once per logger name, so calling this repeatedly
    at module import time is safe.
    """
    log = logging.getLogger(name)
    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log.addHandler(handler)
        log.propagate = False
    log.setLevel(_resolve_level())
    return log


logger = setup_logger("cadence")
