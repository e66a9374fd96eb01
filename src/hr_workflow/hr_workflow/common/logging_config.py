"""Process-wide logging setup."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Root of the package, whatever path it was imported under.
PACKAGE_LOGGER = __name__.rpartition(".common.")[0]

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the package logger.

    Safe to call more than once; only the level changes on later calls.
    """
    global _configured

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
