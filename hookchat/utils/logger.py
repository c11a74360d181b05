"""Logging for the hookchat service.

Module loggers are children of the ``hookchat`` logger, so configuring that
one logger at startup covers every module.
"""

import logging
import os
from typing import List, Optional


APP_LOGGER_NAME = "hookchat"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _build_handlers(level: int, log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    name: str = APP_LOGGER_NAME
) -> logging.Logger:
    """
    Configure a logger with console and optional file output.

    Calling it again replaces the handlers of the previous call, so a
    reload with new settings takes effect instead of being ignored.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL); unknown names fall back to INFO
        log_file: Optional path to a log file, its directory is created
        name: Logger to configure

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(level, log_file):
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the application logger for ``name`` (usually ``__name__``)."""
    if name == APP_LOGGER_NAME or name.startswith(f"{APP_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")


def init_app_logger(settings) -> logging.Logger:
    """Configure the application logger from settings."""
    return configure_logging(settings.log_level, settings.log_file)
