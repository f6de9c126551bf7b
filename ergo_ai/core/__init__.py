"""
Core utilities and configuration for ergo.

This package provides the settings model and logging configuration shared by
the command pipeline and the CLI.
"""

from ergo_ai.core.config import GeneratorBackend, Mode, Settings, load_settings
from ergo_ai.core.logging_config import get_logger, setup_logging

__all__ = ["GeneratorBackend", "Mode", "Settings", "get_logger", "load_settings", "setup_logging"]
