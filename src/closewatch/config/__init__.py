"""Configuration module for closewatch."""

from closewatch.config.logging import bind_close_context, configure_logging
from closewatch.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging", "bind_close_context"]
