"""Creation of missing parent directories for rewritten paths.

When autocreate is enabled, a rewritten path may point into a directory
tree that does not exist yet in the backing filesystem. The missing
ancestors are created with the effective uid/gid of the requesting
process, so ordinary permission checks apply as if the caller had created
them itself.

Effective uid/gid are process-wide, and FUSE serves requests from several
threads. The whole switch/create/restore sequence therefore runs under a
single module-level lock.
"""

import os
import threading
from typing import Optional

from rewritefs.core.constants import Limits
from rewritefs.infrastructure.logger import Logger, get_logger

_identity_lock = threading.Lock()


class AutoCreator:
    """Create parent directories under a caller's identity."""

    def __init__(self, mode: int = Limits.AUTOCREATE_MODE, logger: Optional[Logger] = None):
        """Initialize the auto-creator.

        Args:
            mode: Mode for new directories, filtered by the process umask
            logger: Logger for warnings (global logger if None)
        """
        self.mode = mode
        self.logger = logger if logger is not None else get_logger()

    def create_parents(self, path: str, uid: Optional[int] = None, gid: Optional[int] = None) -> bool:
        """Create every missing ancestor directory of ``path``.

        Failures are logged as warnings and never raised; the server's own
        effective identity is restored in every case.

        Args:
            path: Real path whose parents should exist
            uid: Effective uid to create them as (None keeps the current one)
            gid: Effective gid to create them as (None keeps the current one)

        Returns:
            True if the parent directory exists afterwards
        """
        parent = os.path.dirname(path)
        if not parent:
            return True

        with _identity_lock:
            saved_uid = os.geteuid()
            saved_gid = os.getegid()

            # The gid has to change first: after dropping root euid the
            # process may no longer be allowed to change its egid.
            self._set_identity(uid, gid)
            try:
                os.makedirs(parent, self.mode, exist_ok=True)
                created = True
            except OSError as e:
                self.logger.warning(
                    f"{path}: autocreating parents failed", error=e.strerror or str(e)
                )
                created = False
            finally:
                self._restore_identity(saved_uid, saved_gid)

        return created

    def _set_identity(self, uid: Optional[int], gid: Optional[int]) -> None:
        if gid is not None:
            try:
                os.setegid(gid)
            except OSError as e:
                self.logger.warning("could not set EGID", gid=gid, error=e.strerror or str(e))

        if uid is not None:
            try:
                os.seteuid(uid)
            except OSError as e:
                self.logger.warning("could not set EUID", uid=uid, error=e.strerror or str(e))

    def _restore_identity(self, uid: int, gid: int) -> None:
        try:
            os.seteuid(uid)
        except OSError as e:
            self.logger.warning("could not restore EUID", uid=uid, error=e.strerror or str(e))

        try:
            os.setegid(gid)
        except OSError as e:
            self.logger.warning("could not restore EGID", gid=gid, error=e.strerror or str(e))
