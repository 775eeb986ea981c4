"""
RewriteFS Core: Constants

This module provides system-wide constants and error codes shared by the
parser, the resolver and the FUSE layer.
"""
from enum import IntEnum

# Version information
REWRITEFS_VERSION = "1.0.0"


# Error codes (0-9 range)
class ErrorCode(IntEnum):
    """Standardized error codes for RewriteFS operations."""

    INVALID_INPUT = 1  # Bad path, malformed rule file
    NOT_FOUND = 2  # File or resource doesn't exist
    PERMISSION_DENIED = 3  # Insufficient permissions
    CONFLICT = 4  # Config file collides with the mount point
    INTERNAL_ERROR = 6  # Template/regex mismatch, bug in RewriteFS


class RewriteError(Exception):
    """Base exception for all RewriteFS errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


# Rule file syntax
class Syntax:
    """Characters with a meaning in the rule file."""

    COMMENT = "#"
    CONTEXT = "-"
    SLASH = "/"
    CUSTOM_DELIMITER = "m"
    ESCAPE = "\\"
    PASSTHROUGH = "."

    FLAG_CASELESS = "i"
    FLAG_EXTENDED = "x"
    FLAG_UNICODE = "u"


# Verbosity thresholds for diagnostics
class Verbosity(IntEnum):
    """Verbosity levels gating diagnostic output."""

    QUIET = 0
    DECISIONS = 1  # Rule table at startup, rewritten paths
    PASSTHROUGH = 2  # Paths left unrewritten
    TRACE = 3  # Per-request context/rule trace
    FRAGMENTS = 4  # Before/after path fragments


# Filesystem defaults
class Limits:
    """Default values for path handling."""

    MAX_PATH_LENGTH = 4096
    AUTOCREATE_MODE = 0o777  # Subject to the process umask
    PROC_ROOT = "/proc"


# Mount options always passed to FUSE
DEFAULT_FUSE_OPTIONS = {
    "use_ino": True,
    "default_permissions": True,
}
