"""
Logging helpers for the IndexedDB browser.

All modules obtain their logger through get_logger() so that a single call to
setup_logging() configures the whole package.
"""

import logging
import sys

from idbbrowser.utils.config_utils import get_config

ROOT_LOGGER_NAME = "idbbrowser"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure the package logger.

    The level defaults to the "logging.level" configuration key. Calling this
    more than once replaces the handler instead of stacking duplicates.
    """
    if level is None:
        level = str(get_config().get("logging.level", "INFO"))

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger below the package root logger."""
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
