"""
Logging for dgsem.

All handlers sit on the package logger ``dgsem``; module loggers
(``dgsem.backend``, ``dgsem.pipeline``, ...) carry none and propagate to it.
The level comes from ``DGSEM_LOG_LEVEL`` (default ``INFO``).

Usage:
    from dgsem.log import get_logger, log_to_file

    logger = get_logger("dgsem.mesh")
    log_to_file("run/dgsem.log")   # optional, mirrors every message
"""

import logging
import os
import sys

PACKAGE = "dgsem"


def _package_logger():
    package = logging.getLogger(PACKAGE)
    if not package.handlers:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(logging.Formatter("%(message)s"))
        package.addHandler(console)
        package.setLevel(os.environ.get("DGSEM_LOG_LEVEL", "INFO").upper())
        package.propagate = False
    return package


def get_logger(name):
    """Logger for a dgsem module, attached below the package logger."""
    package = _package_logger()
    if name != PACKAGE and not name.startswith(PACKAGE + "."):
        name = f"{PACKAGE}.{name}"
    return package.getChild(name[len(PACKAGE) + 1:]) if name != PACKAGE else package


def log_to_file(path, level=logging.DEBUG):
    """
    Mirror dgsem messages into a file (timestamped, with logger name).

    Returns the handler so callers can remove it again.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s: %(message)s"))
    package = _package_logger()
    package.addHandler(handler)
    return handler
