#!/usr/bin/env python3
"""Startup sequence and mounting for RewriteFS.

This module handles:
- Validation of the merged settings (source, mount point, rule file)
- Rule file parsing into an immutable Config
- Component initialization (RuleEngine, RewriteFSOperations)
- FUSE filesystem mounting and cleanup on exit

Every startup error is fatal and happens before anything is mounted.

Example:
    >>> from rewritefs.main import run_rewritefs
    >>> run_rewritefs(settings, logger)
"""

import os
import sys
from typing import Any, Dict, List, Optional

from fuse import FUSE

from rewritefs.core.constants import DEFAULT_FUSE_OPTIONS
from rewritefs.core.validators import (
    normalize_source,
    validate_config_file,
    validate_mount_collision,
    validate_mount_point,
    validate_verbosity,
)
from rewritefs.fuse.operations import RewriteFSOperations
from rewritefs.infrastructure.config_manager import ConfigManager
from rewritefs.infrastructure.logger import Logger
from rewritefs.rules.engine import Config, RuleEngine
from rewritefs.rules.parser import load_config_file


def build_config(settings: ConfigManager) -> Config:
    """
    Validate startup settings and parse the rule file.

    Checks run in a fixed order: source directory, mount point, rule file
    location relative to the mount point, then the rule file itself. The
    mount point and rule file are made absolute before they are compared.

    Args:
        settings: Merged startup settings

    Returns:
        Immutable configuration for the rule engine

    Raises:
        ValidationError: If a setting is missing or invalid
        ConfigParseError: If the rule file cannot be read or parsed
    """
    root = normalize_source(settings.get("source"))
    mount_point = os.path.abspath(validate_mount_point(settings.get("mount")))
    verbosity = validate_verbosity(settings.get("verbose"))

    config_file = settings.get("config")
    contexts = ()
    if config_file:
        config_file = os.path.abspath(config_file)
        validate_mount_collision(config_file, mount_point)
        validate_config_file(config_file)
        contexts = load_config_file(config_file)

    return Config(
        root=root,
        mount_point=mount_point,
        contexts=contexts,
        verbosity=verbosity,
        autocreate=bool(settings.get("autocreate", False)),
        config_file=config_file,
    )


def build_fuse_options(extra_options: Optional[List[str]]) -> Dict[str, Any]:
    """
    Build FUSE mount options dictionary.

    ``use_ino`` and ``default_permissions`` are always set. Options passed
    through ``-o`` are added as ``key=value`` or as boolean flags.

    Args:
        extra_options: Options not consumed by RewriteFS itself

    Returns:
        Keyword arguments for ``fuse.FUSE``
    """
    options: Dict[str, Any] = dict(DEFAULT_FUSE_OPTIONS)

    for opt in extra_options or []:
        if "=" in opt:
            key, value = opt.split("=", 1)
            options[key] = value
        else:
            options[opt] = True

    return options


class RewriteFSMain:
    """
    Main class for RewriteFS filesystem management.

    Handles component lifecycle, FUSE mounting, and shutdown.
    """

    def __init__(self, settings: ConfigManager, logger: Logger):
        """
        Initialize RewriteFS main controller.

        Args:
            settings: Merged startup settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger

        # Components
        self.config: Optional[Config] = None
        self.rule_engine: Optional[RuleEngine] = None
        self.fuse_ops: Optional[RewriteFSOperations] = None

    def initialize_components(self) -> None:
        """
        Build the configuration, the rule engine and the FUSE operations.

        Raises:
            RewriteError: If the settings or the rule file are invalid
        """
        self.logger.debug("Validating settings and parsing rule file")
        self.config = build_config(self.settings)

        self.logger.set_verbosity(self.config.verbosity)

        self.rule_engine = RuleEngine(self.config, logger=self.logger)
        self.rule_engine.log_rules()

        self.fuse_ops = RewriteFSOperations(self.rule_engine, logger=self.logger)

        self.logger.debug(
            f"Loaded {len(self.config.contexts)} context(s) with "
            f"{self.config.rule_count} rule(s)"
        )

    def mount_filesystem(self) -> int:
        """
        Mount the FUSE filesystem (blocks until unmount).

        No Python signal handlers are installed: libfuse only sets its own
        unmounting handlers for signals still at their default action.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        mount_point = self.config.mount_point
        fuse_options = build_fuse_options(self.settings.get("fuse_options"))

        self.logger.debug(f"Mounting {self.config.root} at {mount_point}")

        try:
            FUSE(
                self.fuse_ops,
                mount_point,
                foreground=bool(self.settings.get("foreground", False)),
                nothreads=False,
                **fuse_options,
            )
        except RuntimeError as e:
            self.logger.error(f"FUSE mount failed: {e}")
            return 1

        self.logger.debug("FUSE unmounted")
        return 0

    def cleanup(self) -> None:
        """Log final statistics on shutdown."""
        if self.fuse_ops is not None:
            self.logger.debug(f"Final statistics: {self.fuse_ops.get_stats()}")

    def run(self) -> int:
        """
        Run RewriteFS.

        Startup errors propagate to the caller before anything is mounted.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        self.initialize_components()

        try:
            return self.mount_filesystem()
        finally:
            self.cleanup()


def run_rewritefs(settings: ConfigManager, logger: Logger) -> int:
    """
    Main entry point for running RewriteFS.

    Args:
        settings: Merged startup settings
        logger: Logger instance

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    return RewriteFSMain(settings, logger).run()


def main() -> int:
    """Console entry point, see :func:`rewritefs.cli.main`."""
    from rewritefs.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
