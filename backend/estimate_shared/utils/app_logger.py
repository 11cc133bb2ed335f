"""
🔥 THINK ULTRA! Logging utilities for the estimate funnel

Every module logs through get_logger(__name__): one stdout handler per logger,
no propagation, so records never print twice next to uvicorn's handlers.
configure_logging() runs once at startup with LOG_LEVEL and also re-levels the
package loggers that were created at import time.
"""

import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

PACKAGE_LOGGER_PREFIXES = ("estimate_funnel", "estimate_shared")


def _resolve_level(level: Union[str, int, None]) -> int:
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    return getattr(logging, level.upper(), logging.INFO)


def _stdout_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    A logger that already has handlers is returned as is.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    resolved = _resolve_level(level)
    logger.setLevel(resolved)
    logger.addHandler(_stdout_handler(resolved))
    logger.propagate = False
    return logger


def configure_logging(level: str = "INFO") -> None:
    """
    Apply the service log level.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    resolved = _resolve_level(level)
    logging.root.setLevel(resolved)
    if not logging.root.handlers:
        logging.root.addHandler(_stdout_handler(resolved))

    for name, existing in list(logging.Logger.manager.loggerDict.items()):
        if not isinstance(existing, logging.Logger) or not name.startswith(PACKAGE_LOGGER_PREFIXES):
            continue
        existing.setLevel(resolved)
        for handler in existing.handlers:
            handler.setLevel(resolved)
