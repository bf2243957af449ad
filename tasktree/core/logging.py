"""Logging setup for the command line entry point."""

import logging
import sys

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a single stderr handler to the ``tasktree`` logger.

    Safe to call more than once; previously installed handlers are replaced.
    """
    logger = logging.getLogger("tasktree")
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    return logger
