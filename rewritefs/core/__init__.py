"""RewriteFS Core - Shared constants, errors and startup validation.

Import specific names from submodules:
    from rewritefs.core.constants import ErrorCode, RewriteError
    from rewritefs.core.validators import ValidationError, validate_mount_collision
"""

from rewritefs.core import constants, validators

__all__ = [
    "constants",
    "validators",
]
