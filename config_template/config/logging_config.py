"""Logging configuration for the template engine and its command line."""
import logging
import sys
import os
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If None, logs to stderr so that
                  rendered output on stdout stays machine readable.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    config = {
        'level': numeric_level,
        'format': DEFAULT_FORMAT,
        'force': True,
    }

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        config['filename'] = log_file
    else:
        config['stream'] = sys.stderr

    logging.basicConfig(**config)

    # asteval reports through its own writer, asyncio is noisy at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.debug("Logging initialized at %s level", level.upper())


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Args:
        name: Logger name, typically __name__ from the calling module

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
