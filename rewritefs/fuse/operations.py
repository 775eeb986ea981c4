"""
FUSE filesystem operations for RewriteFS.

This module implements the FUSE (Filesystem in Userspace) interface as a
plain passthrough: every callback resolves its virtual path through the
RuleEngine and performs the same operation on the resulting real path.
- Metadata operations (getattr, readlink, statfs, access)
- Directory operations (readdir, mkdir, rmdir)
- File operations (open, create, read, write, truncate, release, fsync)
- Namespace operations (unlink, rename, link, symlink, mknod)
- Permission operations (chmod, chown, utimens)

The caller's pid, uid and gid come from ``fuse_get_context()`` and feed
both context selection and autocreate.
"""

import errno
import os
from typing import Any, Dict, List, Optional, Tuple

from fuse import FuseOSError, Operations, fuse_get_context

from rewritefs.infrastructure.logger import Logger, get_logger
from rewritefs.rules.engine import BackreferenceError, ResolutionRequest, RuleEngine

STAT_FIELDS = (
    "st_atime",
    "st_ctime",
    "st_gid",
    "st_mode",
    "st_mtime",
    "st_nlink",
    "st_size",
    "st_uid",
    "st_ino",
    "st_blocks",
    "st_rdev",
)

STATVFS_FIELDS = (
    "f_bavail",
    "f_bfree",
    "f_blocks",
    "f_bsize",
    "f_favail",
    "f_ffree",
    "f_files",
    "f_flag",
    "f_frsize",
    "f_namemax",
)


class RewriteFSOperations(Operations):
    """
    FUSE filesystem operations implementation for RewriteFS.

    Thread Safety:
    - The RuleEngine and its Config are read-only after startup
    - File handles are the OS file descriptors themselves
    - Autocreate serializes its identity switch internally
    """

    def __init__(self, engine: RuleEngine, logger: Optional[Logger] = None):
        """
        Initialize FUSE operations.

        Args:
            engine: Rule engine resolving virtual paths
            logger: Logger instance (global logger if None)
        """
        self.engine = engine
        self.root = engine.config.root
        self.logger = logger if logger is not None else get_logger()

    # =========================================================================
    # Path Resolution
    # =========================================================================

    def _caller(self) -> Tuple[int, int, int]:
        """Return (uid, gid, pid) of the process behind the current call."""
        return fuse_get_context()

    def _resolve_path(self, path: str) -> str:
        """
        Resolve a virtual path for the current caller.

        Args:
            path: Virtual path (always starts with "/")

        Returns:
            Real filesystem path

        Raises:
            FuseOSError: EIO if the matching rule cannot be applied
        """
        uid, gid, pid = self._caller()
        request = ResolutionRequest(path=path, pid=pid, uid=uid, gid=gid)

        try:
            return self.engine.resolve(request)
        except BackreferenceError as e:
            self.logger.error(f"Cannot rewrite {path}: {e}")
            raise FuseOSError(errno.EIO)

    def _give_to_caller(self, real_path: str) -> None:
        """Hand a newly created entry over to the calling user.

        Only possible (and only needed) when running as root.
        """
        if os.geteuid() != 0:
            return

        uid, gid, _pid = self._caller()
        try:
            os.lchown(real_path, uid, gid)
        except OSError as e:
            self.logger.warning(f"Could not chown {real_path}: {e}")

    # =========================================================================
    # FUSE Metadata Operations
    # =========================================================================

    def access(self, path: str, mode: int) -> None:
        if not os.access(self._resolve_path(path), mode):
            raise FuseOSError(errno.EACCES)

    def getattr(self, path: str, fh: Optional[int] = None) -> Dict[str, Any]:
        """
        Get file attributes (equivalent to lstat()).

        Raises:
            FuseOSError: ENOENT if path doesn't exist
        """
        try:
            if fh is not None:
                st = os.fstat(fh)
            else:
                st = os.lstat(self._resolve_path(path))
        except OSError as e:
            raise FuseOSError(e.errno)

        return {key: getattr(st, key) for key in STAT_FIELDS}

    def readlink(self, path: str) -> str:
        try:
            return os.readlink(self._resolve_path(path))
        except OSError as e:
            raise FuseOSError(e.errno)

    def statfs(self, path: str) -> Dict[str, Any]:
        try:
            stv = os.statvfs(self._resolve_path(path))
        except OSError as e:
            raise FuseOSError(e.errno)

        return {key: getattr(stv, key) for key in STATVFS_FIELDS}

    # =========================================================================
    # FUSE Directory Operations
    # =========================================================================

    def readdir(self, path: str, fh: int) -> List[str]:
        """
        List directory contents of the resolved directory.

        Returns:
            List of directory entries (including "." and "..")
        """
        try:
            return [".", ".."] + os.listdir(self._resolve_path(path))
        except OSError as e:
            raise FuseOSError(e.errno)

    def mkdir(self, path: str, mode: int) -> None:
        real_path = self._resolve_path(path)
        try:
            os.mkdir(real_path, mode)
        except OSError as e:
            raise FuseOSError(e.errno)
        self._give_to_caller(real_path)

    def rmdir(self, path: str) -> None:
        try:
            os.rmdir(self._resolve_path(path))
        except OSError as e:
            raise FuseOSError(e.errno)

    # =========================================================================
    # FUSE Namespace Operations
    # =========================================================================

    def mknod(self, path: str, mode: int, dev: int) -> None:
        real_path = self._resolve_path(path)
        try:
            os.mknod(real_path, mode, dev)
        except OSError as e:
            raise FuseOSError(e.errno)
        self._give_to_caller(real_path)

    def unlink(self, path: str) -> None:
        try:
            os.unlink(self._resolve_path(path))
        except OSError as e:
            raise FuseOSError(e.errno)

    def symlink(self, target: str, source: str) -> None:
        """
        Create a symlink at ``target`` pointing to ``source``.

        fusepy passes (link path, link contents); only the link path is a
        virtual path, the contents are stored verbatim.
        """
        real_path = self._resolve_path(target)
        try:
            os.symlink(source, real_path)
        except OSError as e:
            raise FuseOSError(e.errno)
        self._give_to_caller(real_path)

    def rename(self, old: str, new: str) -> None:
        try:
            os.rename(self._resolve_path(old), self._resolve_path(new))
        except OSError as e:
            raise FuseOSError(e.errno)

    def link(self, target: str, source: str) -> None:
        try:
            os.link(self._resolve_path(source), self._resolve_path(target))
        except OSError as e:
            raise FuseOSError(e.errno)

    # =========================================================================
    # FUSE Permission Operations
    # =========================================================================

    def chmod(self, path: str, mode: int) -> None:
        try:
            os.chmod(self._resolve_path(path), mode)
        except OSError as e:
            raise FuseOSError(e.errno)

    def chown(self, path: str, uid: int, gid: int) -> None:
        try:
            os.lchown(self._resolve_path(path), uid, gid)
        except OSError as e:
            raise FuseOSError(e.errno)

    def utimens(self, path: str, times: Optional[Tuple[float, float]] = None) -> None:
        try:
            os.utime(self._resolve_path(path), times, follow_symlinks=False)
        except OSError as e:
            raise FuseOSError(e.errno)

    # =========================================================================
    # FUSE File Operations
    # =========================================================================

    def open(self, path: str, flags: int) -> int:
        """
        Open file and return the OS file descriptor as handle.

        Raises:
            FuseOSError: If the underlying open fails
        """
        real_path = self._resolve_path(path)
        try:
            fh = os.open(real_path, flags)
        except OSError as e:
            raise FuseOSError(e.errno)

        self.logger.debug(f"Opened file: {path} -> {real_path} (fh={fh})")
        return fh

    def create(self, path: str, mode: int, fi=None) -> int:
        """
        Create and open new file.

        Returns:
            File handle (OS file descriptor)
        """
        real_path = self._resolve_path(path)
        try:
            fh = os.open(real_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
        except OSError as e:
            raise FuseOSError(e.errno)

        self._give_to_caller(real_path)
        return fh

    def read(self, path: str, size: int, offset: int, fh: int) -> bytes:
        try:
            return os.pread(fh, size, offset)
        except OSError as e:
            raise FuseOSError(e.errno)

    def write(self, path: str, data: bytes, offset: int, fh: int) -> int:
        try:
            return os.pwrite(fh, data, offset)
        except OSError as e:
            raise FuseOSError(e.errno)

    def truncate(self, path: str, length: int, fh: Optional[int] = None) -> None:
        try:
            if fh is not None:
                os.ftruncate(fh, length)
            else:
                os.truncate(self._resolve_path(path), length)
        except OSError as e:
            raise FuseOSError(e.errno)

    def flush(self, path: str, fh: int) -> None:
        try:
            os.fsync(fh)
        except OSError as e:
            # Not every file type supports fsync
            if e.errno not in (errno.EINVAL, errno.EROFS):
                raise FuseOSError(e.errno)

    def fsync(self, path: str, datasync: bool, fh: int) -> None:
        try:
            if datasync:
                os.fdatasync(fh)
            else:
                os.fsync(fh)
        except OSError as e:
            raise FuseOSError(e.errno)

    def release(self, path: str, fh: int) -> None:
        try:
            os.close(fh)
        except OSError:
            # The kernel ignores errors from release
            pass

    def get_stats(self) -> Dict[str, Any]:
        """
        Get filesystem statistics for logging at shutdown.

        Returns:
            Dictionary with statistics
        """
        config = self.engine.config
        return {
            "root": config.root,
            "contexts": len(config.contexts),
            "rules": config.rule_count,
            "autocreate": config.autocreate,
        }
