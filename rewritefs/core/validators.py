"""
RewriteFS Core: Startup Validators.

This module validates the values handed over by the command line before
the rule file is parsed and the filesystem is mounted. Every failure here
is fatal: the caller reports it and exits without mounting.
"""
import os
from typing import Optional, Union

from rewritefs.core.constants import ErrorCode, Limits, RewriteError, Verbosity


class ValidationError(RewriteError):
    """Raised when a startup argument is rejected."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        """Initialize ValidationError.

        Args:
            message: Error message
            error_code: Associated error code
        """
        super().__init__(message, error_code)


def validate_path(path: str) -> bool:
    """Validate that a path argument is usable.

    Args:
        path: Path to validate

    Returns:
        True if valid

    Raises:
        ValidationError: If path is invalid
    """
    if not path:
        raise ValidationError("Path cannot be empty")

    if not isinstance(path, str):
        raise ValidationError(f"Path must be string, got {type(path)}")

    if len(path) > Limits.MAX_PATH_LENGTH:
        raise ValidationError(f"Path exceeds maximum length ({Limits.MAX_PATH_LENGTH})")

    if "\0" in path:
        raise ValidationError("Path contains null bytes")

    return True


def normalize_source(source: Optional[str]) -> str:
    """Canonicalize the backing filesystem root.

    The result is absolute, has symlinks resolved and carries no trailing
    slash, so that ``root + virtual_path`` never doubles the separator.

    Args:
        source: Source directory as given on the command line

    Returns:
        Canonical root path

    Raises:
        ValidationError: If the source is missing or not a directory
    """
    if not source:
        raise ValidationError("missing source argument")

    validate_path(source)

    root = os.path.realpath(source)
    if not os.path.isdir(root):
        raise ValidationError(
            f"Cannot open source directory: {source}", ErrorCode.NOT_FOUND
        )

    if root.endswith("/"):
        root = root[:-1]

    return root


def validate_mount_point(mount_point: Optional[str]) -> str:
    """Validate the mount point argument.

    Args:
        mount_point: Mount point as given on the command line

    Returns:
        The mount point, unchanged

    Raises:
        ValidationError: If the mount point is missing
    """
    if not mount_point:
        raise ValidationError("missing mount point argument")

    validate_path(mount_point)
    return mount_point


def validate_mount_collision(config_file: Optional[str], mount_point: str) -> bool:
    """Reject a rule file that lives inside the mount point.

    This is a plain string-prefix test on the paths as given, without any
    canonicalization: ``/mnt2/rules`` is rejected for mount point ``/mnt``.

    Args:
        config_file: Rule file path, or None when no rule file is used
        mount_point: Mount point path

    Returns:
        True if there is no collision

    Raises:
        ValidationError: If the rule file path starts with the mount point
    """
    if config_file is None:
        return True

    if config_file.startswith(mount_point):
        raise ValidationError(
            f"configuration file {config_file} must not be located inside "
            f"the mount point ({mount_point})",
            ErrorCode.CONFLICT,
        )

    return True


def validate_config_file(config_file: str) -> bool:
    """Check that the rule file can be opened for reading.

    Raises:
        ValidationError: If the file is missing or unreadable
    """
    validate_path(config_file)

    if not os.path.isfile(config_file):
        raise ValidationError(
            f"Configuration file does not exist: {config_file}", ErrorCode.NOT_FOUND
        )

    if not os.access(config_file, os.R_OK):
        raise ValidationError(
            f"Configuration file is not readable: {config_file}",
            ErrorCode.PERMISSION_DENIED,
        )

    return True


def validate_verbosity(level: Union[int, str, None]) -> int:
    """Validate a verbosity level.

    Args:
        level: Verbosity as int or numeric string; None means quiet

    Returns:
        Verbosity as a non-negative integer

    Raises:
        ValidationError: If level is not a non-negative integer
    """
    if level is None:
        return int(Verbosity.QUIET)

    if isinstance(level, bool):
        raise ValidationError(f"Verbosity must be an integer, got: {level}")

    try:
        level_int = int(level)
    except (TypeError, ValueError):
        raise ValidationError(f"Verbosity must be an integer, got: {level}")

    if level_int < 0:
        raise ValidationError(f"Verbosity must be non-negative, got: {level_int}")

    return level_int
