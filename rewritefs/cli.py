#!/usr/bin/env python3
"""Command-line interface for RewriteFS.

This module provides the CLI for mounting a RewriteFS filesystem:
- Argument parsing (source, mount point, rule file, verbosity, autocreate)
- ``-o`` mount option splitting (RewriteFS options vs. FUSE options)
- Settings layering (YAML settings file, environment, arguments)
- Logging setup
- Help and version information

Example:
    >>> from rewritefs.cli import parse_arguments
    >>> args = parse_arguments(['/data', '/mnt/rewritefs', '-c', '/etc/rewritefs.conf'])
"""

import argparse
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from rewritefs.core.constants import REWRITEFS_VERSION, RewriteError
from rewritefs.infrastructure.config_manager import ConfigManager, ConfigSource
from rewritefs.infrastructure.logger import Logger, set_global_logger

VERSION = REWRITEFS_VERSION
DESCRIPTION = "RewriteFS - FUSE filesystem rewriting paths per process and pattern"


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


def parse_arguments(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Argument list to parse (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace

    Raises:
        SystemExit: On invalid arguments or --help/--version
    """
    parser = argparse.ArgumentParser(
        prog="rewritefs",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Mount /data at /mnt/data, rewriting paths with a rule file
  rewritefs /data /mnt/data -c ~/.config/rewritefs

  # Same, in the foreground with a per-request trace
  rewritefs /data /mnt/data -c rules.conf -f -v 3

  # Options can also be given as FUSE mount options
  rewritefs /data /mnt/data -o config=rules.conf,verbose=1,autocreate,allow_other
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}",
    )

    parser.add_argument(
        "source",
        nargs="?",
        metavar="SOURCE",
        help="Source directory backing the filesystem",
    )

    parser.add_argument(
        "mount",
        nargs="?",
        metavar="MOUNTPOINT",
        help="Mount point directory",
    )

    rw_group = parser.add_argument_group("rewritefs options")

    rw_group.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        type=str,
        help="Path to the rule file",
    )

    rw_group.add_argument(
        "-v",
        "--verbose",
        metavar="LEVEL",
        type=int,
        help="Verbose level 0-4 [to be used with -f]",
    )

    rw_group.add_argument(
        "--autocreate",
        action="store_true",
        default=None,
        help="Create missing parent directories of rewritten paths",
    )

    rw_group.add_argument(
        "--settings",
        metavar="FILE",
        type=str,
        help="YAML file with default values for these options",
    )

    log_group = parser.add_argument_group("logging options")

    log_group.add_argument(
        "-f",
        "--foreground",
        action="store_true",
        default=None,
        help="Run in foreground (don't daemonize)",
    )

    log_group.add_argument(
        "-d",
        "--debug",
        action="store_true",
        default=None,
        help="Enable debug logging (implies --foreground)",
    )

    log_group.add_argument(
        "--log-file",
        metavar="FILE",
        type=str,
        help="Also write diagnostics to this file",
    )

    fuse_group = parser.add_argument_group("FUSE options")

    fuse_group.add_argument(
        "-o",
        metavar="OPT[,OPT...]",
        action="append",
        dest="mount_options",
        default=[],
        help="Mount options; config=, verbose= and autocreate are understood "
        "by rewritefs, everything else is passed to FUSE",
    )

    return parser.parse_args(args)


def parse_mount_options(option_groups: List[str]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Split ``-o`` options into RewriteFS settings and FUSE options.

    Args:
        option_groups: Values of every ``-o`` argument (comma separated)

    Returns:
        (settings, fuse_options)

    Raises:
        CLIError: If a RewriteFS option has an invalid value
    """
    settings: Dict[str, Any] = {}
    fuse_options: List[str] = []

    for group in option_groups:
        for opt in group.split(","):
            opt = opt.strip()
            if not opt:
                continue

            key, sep, value = opt.partition("=")
            if key == "config" and sep:
                settings["config"] = value
            elif key == "verbose" and sep:
                try:
                    settings["verbose"] = int(value)
                except ValueError:
                    raise CLIError(f"Invalid verbose level: {value}")
            elif key == "autocreate" and not sep:
                settings["autocreate"] = True
            else:
                fuse_options.append(opt)

    return settings, fuse_options


def build_config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Build a settings dictionary from command-line arguments.

    Explicit flags win over the same setting given with ``-o``.

    Args:
        args: Parsed arguments namespace

    Returns:
        Settings for the CLI_ARGS layer (None means "not given")
    """
    settings, fuse_options = parse_mount_options(args.mount_options or [])

    config = {
        "source": args.source,
        "mount": args.mount,
        "config": args.config if args.config is not None else settings.get("config"),
        "verbose": args.verbose if args.verbose is not None else settings.get("verbose"),
        "autocreate": args.autocreate or settings.get("autocreate"),
        "foreground": args.foreground or args.debug,
        "debug": args.debug,
        "log_file": args.log_file,
        "fuse_options": fuse_options or None,
    }

    # Relative paths are relative to where the command was started. The
    # mount point and rule file must share that form for the collision check.
    for key in ("source", "mount", "config"):
        if config[key]:
            config[key] = os.path.abspath(config[key])

    return config


def load_settings(args: argparse.Namespace) -> ConfigManager:
    """
    Merge settings file, environment and arguments.

    Args:
        args: Parsed arguments namespace

    Returns:
        Settings manager with all layers loaded
    """
    settings = ConfigManager(settings_file=args.settings)
    settings.load_dict(build_config_from_args(args), ConfigSource.CLI_ARGS)
    return settings


def setup_logging(settings: ConfigManager) -> Logger:
    """
    Setup logging based on merged settings.

    Args:
        settings: Merged settings

    Returns:
        Configured logger instance, also installed as the global logger
    """
    log_level = "DEBUG" if settings.get("debug") else "INFO"
    verbosity = settings.get("verbose", 0)
    if isinstance(verbosity, bool) or not isinstance(verbosity, int):
        verbosity = 0

    logger = Logger("rewritefs", level=log_level, verbosity=verbosity)

    log_file = settings.get("log_file")
    if log_file:
        logger.add_handler(logger.create_file_handler(log_file))

    set_global_logger(logger)
    return logger


def validate_runtime_environment() -> None:
    """
    Validate runtime environment for RewriteFS.

    Raises:
        CLIError: If FUSE is unavailable
    """
    try:
        import fuse
    except (ImportError, OSError) as e:
        raise CLIError(f"FUSE library not available: {e}\nInstall fusepy: pip install fusepy")

    if not hasattr(fuse, "FUSE"):
        raise CLIError("FUSE library is too old or incompatible\nInstall fusepy: pip install fusepy")

    if not os.path.exists("/dev/fuse"):
        raise CLIError(
            "/dev/fuse not found\n"
            "FUSE kernel module may not be loaded\n"
            "Try: sudo modprobe fuse"
        )


def print_banner(logger: Logger) -> None:
    """
    Print startup banner with version information.

    Args:
        logger: Logger instance
    """
    logger.info("=" * 60)
    logger.info(f"RewriteFS v{VERSION}")
    logger.info(DESCRIPTION)
    logger.info("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Parses arguments, merges settings, then hands over to
    :func:`rewritefs.main.run_rewritefs` which validates the settings,
    parses the rule file and mounts.

    Returns:
        Process exit code
    """
    try:
        args = parse_arguments(argv)
        settings = load_settings(args)
        logger = setup_logging(settings)

        validate_runtime_environment()

        if settings.get("foreground"):
            print_banner(logger)

        from rewritefs.main import run_rewritefs

        return run_rewritefs(settings, logger)

    except (CLIError, RewriteError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
