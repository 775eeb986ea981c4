"""RewriteFS Infrastructure Layer.

This layer provides services used by the rule engine and the FUSE layer:
- ConfigManager: Layered startup settings (defaults, YAML, environment, CLI)
- Logger: Structured, verbosity-gated logging
"""

from .config_manager import ConfigError, ConfigManager, ConfigSource, ConfigValue
from .logger import Logger, LogLevel, get_logger, set_global_logger

__all__ = [
    # Logger exports
    "Logger",
    "LogLevel",
    "get_logger",
    "set_global_logger",
    # ConfigManager exports
    "ConfigSource",
    "ConfigValue",
    "ConfigError",
    "ConfigManager",
]
