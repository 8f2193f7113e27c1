# jsonstore/logging/logger.py
"""
Loggers for jsonstore.

Every module logs under its own dotted name below ``jsonstore`` (e.g.
``jsonstore.drivers.sqlite``), prefixing messages with a subsystem tag
from jsonstore.logging.tags:

    logger = get_logger(__name__)
    logger.info(f"{SCHEMA} Created store 'people'")

jsonstore is a library, so importing it attaches no handlers. Records
propagate to whatever the host application configured; scripts that
have no logging setup of their own can call configure_logging().
"""

import logging
import sys

DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
PACKAGE_LOGGER = "jsonstore"


def configure_logging(
    level: int = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    stream=sys.stderr,
):
    """
    Send jsonstore records to ``stream``.

    Only the package logger is touched, never the root logger. A second
    call adjusts the level without adding another handler.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if not package_logger.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(fmt))
        package_logger.addHandler(handler)

    package_logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Logger for a jsonstore module; pass ``__name__``."""
    return logging.getLogger(name)
