#!/usr/bin/env python3
"""Layered startup settings for RewriteFS.

Startup settings (source directory, mount point, rule file, verbosity,
autocreate, logging) can come from several places. This module merges
them with a fixed precedence:

1. Compiled defaults (lowest)
2. YAML settings file (``--settings FILE``)
3. Environment variables (``REWRITEFS_*``)
4. Command-line arguments (highest)

The rule file itself uses its own syntax and is handled by
:mod:`rewritefs.rules.parser`; the merged settings only tell the startup
sequence where to find it.

Example:
    >>> settings = ConfigManager()
    >>> settings.load_file("rewritefs.yaml")
    >>> settings.load_dict({"verbose": 2}, ConfigSource.CLI_ARGS)
    >>> settings.get("verbose")
    2
"""

import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from rewritefs.core.constants import ErrorCode, RewriteError

ENV_PREFIX = "REWRITEFS_"


class ConfigSource(Enum):
    """Configuration source precedence levels."""

    COMPILED_DEFAULTS = 1  # Lowest precedence
    SETTINGS_FILE = 2
    ENVIRONMENT = 3
    CLI_ARGS = 4  # Highest precedence


@dataclass
class ConfigValue:
    """Configuration value with the layer it came from."""

    value: Any
    source: ConfigSource
    timestamp: float = field(default_factory=time.time)


class ConfigError(RewriteError):
    """Settings could not be loaded."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        super().__init__(message, error_code)


class ConfigManager:
    """Thread-safe layered settings manager.

    Keys are flat (``source``, ``mount``, ``config``, ``verbose``,
    ``autocreate``, ``log_file``, ``fuse_options``, ``foreground``).
    A layer only overrides a key when it provides a non-None value.
    """

    DEFAULT_CONFIG: Dict[str, Any] = {
        "source": None,
        "mount": None,
        "config": None,
        "verbose": 0,
        "autocreate": False,
        "foreground": False,
        "debug": False,
        "log_file": None,
        "fuse_options": [],
    }

    def __init__(self, settings_file: Optional[str] = None, load_environment: bool = True):
        """Initialize configuration manager.

        Args:
            settings_file: Optional YAML settings file to load
            load_environment: Whether to read ``REWRITEFS_*`` variables
        """
        self._config: Dict[ConfigSource, Dict[str, Any]] = {}
        self._lock = threading.RLock()

        self._config[ConfigSource.COMPILED_DEFAULTS] = dict(self.DEFAULT_CONFIG)

        if settings_file:
            self.load_file(settings_file)

        if load_environment:
            self._load_environment()

    def load_file(self, file_path: str, source: ConfigSource = ConfigSource.SETTINGS_FILE) -> None:
        """Load settings from a YAML file.

        Args:
            file_path: Path to YAML settings file
            source: Configuration source level

        Raises:
            ConfigError: If file cannot be loaded or parsed
        """
        path = Path(file_path).expanduser()

        if not path.exists():
            raise ConfigError(f"Settings file not found: {file_path}", ErrorCode.NOT_FOUND)

        try:
            with open(path, "r") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse error in {file_path}: {e}", ErrorCode.INVALID_INPUT)
        except OSError as e:
            raise ConfigError(f"Error loading settings {file_path}: {e}", ErrorCode.PERMISSION_DENIED)

        if config_data is None:
            config_data = {}

        if not isinstance(config_data, dict):
            raise ConfigError(f"Invalid settings format in {file_path}", ErrorCode.INVALID_INPUT)

        # Accept both a flat mapping and one nested under "rewritefs"
        if isinstance(config_data.get("rewritefs"), dict):
            config_data = config_data["rewritefs"]

        unknown = set(config_data) - set(self.DEFAULT_CONFIG)
        if unknown:
            raise ConfigError(
                f"Unknown settings in {file_path}: {', '.join(sorted(unknown))}",
                ErrorCode.INVALID_INPUT,
            )

        with self._lock:
            self._config[source] = config_data

    def load_dict(self, config_data: Dict[str, Any], source: ConfigSource = ConfigSource.CLI_ARGS) -> None:
        """Load settings from a dictionary.

        Args:
            config_data: Settings dictionary
            source: Configuration source level
        """
        with self._lock:
            self._config[source] = dict(config_data)

    def _load_environment(self) -> None:
        """Load settings from environment variables.

        Environment variables in format: REWRITEFS_KEY=value
        Example: REWRITEFS_VERBOSE=3
        """
        env_config = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            name = key[len(ENV_PREFIX):].lower()
            if name not in self.DEFAULT_CONFIG:
                continue

            if name == "fuse_options":
                env_config[name] = [opt for opt in value.split(",") if opt]
            else:
                env_config[name] = self._parse_env_value(value)

        if env_config:
            with self._lock:
                self._config[ConfigSource.ENVIRONMENT] = env_config

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value.

        Args:
            value: String value from environment

        Returns:
            Parsed value (bool, int, or str)
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting by key.

        Args:
            key: Setting name
            default: Default value if no layer provides it

        Returns:
            Value from the highest-precedence layer, or default
        """
        with self._lock:
            for source in sorted(self._config.keys(), key=lambda s: s.value, reverse=True):
                value = self._config[source].get(key)
                if value is not None:
                    return value

            return default

    def get_value(self, key: str) -> Optional[ConfigValue]:
        """Get a setting together with the layer that provided it."""
        with self._lock:
            for source in sorted(self._config.keys(), key=lambda s: s.value, reverse=True):
                value = self._config[source].get(key)
                if value is not None:
                    return ConfigValue(value=value, source=source)
            return None

    def get_all(self) -> Dict[str, Any]:
        """Get merged settings from all sources.

        Returns:
            Merged settings dictionary
        """
        with self._lock:
            merged: Dict[str, Any] = {}

            for source in sorted(self._config.keys(), key=lambda s: s.value):
                for key, value in self._config[source].items():
                    if value is not None:
                        merged[key] = value

            return merged
