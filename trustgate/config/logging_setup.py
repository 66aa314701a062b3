"""Logging configuration for applications embedding TrustGate."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Configure root logging with the standard TrustGate format.

    Library modules only create named loggers; call this once from the
    embedding application's entry point.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger = logging.getLogger("trustgate")
    logger.setLevel(level)
    return logger
