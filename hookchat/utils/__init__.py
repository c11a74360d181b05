"""Utilities package."""

from .logger import get_logger, configure_logging, init_app_logger
from .clock import utcnow
from .formatting import human_file_size

__all__ = [
    "get_logger",
    "configure_logging",
    "init_app_logger",
    "utcnow",
    "human_file_size",
]
