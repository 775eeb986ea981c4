"""RewriteFS: a FUSE filesystem that rewrites paths.

Every path a process accesses under the mount point is mapped to a real
path through a rule file. Rules are regular expressions with rewrite
templates, grouped into contexts selected by the caller's command line.
"""

from rewritefs.core.constants import REWRITEFS_VERSION

__version__ = REWRITEFS_VERSION
