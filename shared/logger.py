"""Logging setup shared by all tools."""

import logging
from typing import Optional

from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"
DATE_FORMAT = "[%X]"


def setup_logger(name: Optional[str] = None, level: str = "INFO") -> logging.Logger:
    """
    Configure logging with a rich console handler.

    Args:
        name: Logger name (the root ``tools`` logger is configured as well)
        level: Log level name

    Returns:
        Configured logger
    """
    root = logging.getLogger("tools")
    root.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)

    logger = logging.getLogger(name) if name else root
    logger.setLevel(level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a module logger."""
    return logging.getLogger(name)
