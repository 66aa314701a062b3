"""Configuration module."""

from .logging_setup import LOG_FORMAT, configure_logging
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "LOG_FORMAT",
]
