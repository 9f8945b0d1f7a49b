"""
Logging setup for the calendar switch bridge.

Every module logs through a named logger under the "calswitch" root
(e.g. "calswitch.oauth", "calswitch.scheduler"). This module installs a
single stdout handler on that root so all of them share one format.
"""

import logging
import sys


ROOT_LOGGER_NAME = "calswitch"

LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the "calswitch" logger hierarchy.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Log level name ("DEBUG", "INFO", ...)

    Returns:
        The configured root "calswitch" logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger
