"""Logger factory shared by the workflow modules."""
from __future__ import annotations

import logging
import sys

from . import config

PACKAGE_LOGGER = "rnaseq_de"


def _package_logger() -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)
    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Return a logger in the ``rnaseq_de`` namespace.

    Only the package logger owns a handler. Module loggers such as
    ``rnaseq_de.tpm`` propagate to it, so each record is printed once no matter
    how many modules are imported. Names outside the package are nested under it.
    """

    _package_logger()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


__all__ = ["PACKAGE_LOGGER", "get_logger"]
