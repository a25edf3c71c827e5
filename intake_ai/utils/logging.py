"""Centralized logging configuration.

Every module logs through ``get_logger(__name__)``. The level of loggers that
already exist is changed with ``configure_logging``, which the pipeline calls
with ``Settings.log_level`` at construction time.
"""

import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "intake_ai"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"

_default_level = "INFO"


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
        level: Optional log level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    log_level = _resolve_level(level or _default_level)
    logger.setLevel(log_level)

    # Avoid duplicate handlers
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(console_handler)

    return logger


def configure_logging(level: str) -> None:
    """Apply ``level`` to every package logger and to loggers created later.

    Raises:
        ValueError: If ``level`` is not a logging level name
    """
    global _default_level
    log_level = _resolve_level(level)
    _default_level = level.upper()

    for name, logger in list(logging.root.manager.loggerDict.items()):
        if not isinstance(logger, logging.Logger):
            continue
        if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
            continue
        logger.setLevel(log_level)
        for handler in logger.handlers:
            handler.setLevel(log_level)
