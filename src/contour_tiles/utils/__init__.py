"""Configuration and logging helpers."""

from .config import Configuration, RuntimeSettings, SourceEncoding, load_runtime_settings
from .logging_config import configure_logging

__all__ = [
    "Configuration",
    "RuntimeSettings",
    "SourceEncoding",
    "load_runtime_settings",
    "configure_logging"
]
