"""
Logging Setup
=============

Console + optional file handlers for the "SemanticMediator" logger tree and
the package loggers.
"""

import logging
import os
from typing import Optional

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

PACKAGE_LOGGERS = ("SemanticMediator", "core", "providers", "memory_store", "mediator", "api")


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach handlers once to the package loggers.

    Args:
        level: Log level name
        log_file: Optional path, e.g. "logs/mediator.log"

    Returns:
        The "SemanticMediator" logger
    """
    formatter = logging.Formatter(FORMAT)
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    handlers = []
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    handlers.append(sh)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        handlers.append(fh)

    for name in PACKAGE_LOGGERS:
        pkg_logger = logging.getLogger(name)
        pkg_logger.setLevel(numeric_level)
        if not pkg_logger.handlers:
            for handler in handlers:
                pkg_logger.addHandler(handler)

    return logging.getLogger("SemanticMediator")
