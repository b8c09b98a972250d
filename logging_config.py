"""
logging_config.py — Centralized logging setup for the storefront API

All modules log through the standard logging package with one shared format.
Console output always goes to stdout; a file handler is added when LOG_FILE is set.
"""

import logging
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")


def setup_logging():
    """
    Configures the global logging system for the application.

    - Log level: LOG_LEVEL (default INFO)
    - Log format: timestamp, log level, process ID, logger name and message
    - Output: stdout, plus LOG_FILE when configured
    - pymongo driver chatter reduced to WARNING
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format=log_format,
        handlers=handlers,
    )

    logging.getLogger("pymongo").setLevel(logging.WARNING)


def get_logger(name):
    """Returns a logger that follows the global format and handlers."""
    return logging.getLogger(name)
