"""
Logging configuration for the shopping chatbot.

Every module logs through a child of the ``shopping_chatbot`` logger
(``shopping_chatbot.catalog``, ``shopping_chatbot.tools``, ...), so a single
call to :func:`setup_logging` routes all of them to the same handlers.
"""

import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")

ROOT_LOGGER_NAME = "shopping_chatbot"

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the project logger.

    Args:
        level: Level name such as "DEBUG"; defaults to LOG_LEVEL
        log_file: Optional file to write records to; defaults to LOG_FILE

    Returns:
        The configured ``shopping_chatbot`` logger
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel((level or LOG_LEVEL).upper())

    # Repeated calls (tests, CLI restarts) must not stack handlers
    if root_logger.handlers:
        return root_logger

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_file = log_file or LOG_FILE
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.propagate = False
    root_logger.debug("Logging initialised at level %s", logging.getLevelName(root_logger.level))
    return root_logger
