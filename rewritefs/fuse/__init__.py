"""RewriteFS FUSE Interface.

This module implements the FUSE filesystem interface for RewriteFS:
- RewriteFSOperations: passthrough callbacks resolving every path

Usage:
    from rewritefs.fuse import RewriteFSOperations
    from rewritefs.rules import RuleEngine

    ops = RewriteFSOperations(RuleEngine(config))
"""

from rewritefs.fuse.operations import RewriteFSOperations

__all__ = [
    "RewriteFSOperations",
]
