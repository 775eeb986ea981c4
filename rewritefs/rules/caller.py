"""Caller identity lookup.

Contexts in the rule file are selected by matching the command line of
the process that issued a filesystem request. The command line comes from
``/proc/<pid>/cmdline``, where arguments are NUL-separated; they are joined
with single spaces here.
"""

import os
from typing import Callable, Optional

from rewritefs.core.constants import Limits

CmdlineReader = Callable[[int], str]


def read_cmdline(pid: int, proc_root: str = Limits.PROC_ROOT) -> str:
    """Read the command line of a process.

    Args:
        pid: Process id
        proc_root: Mount point of procfs

    Returns:
        Arguments joined by single spaces, or an empty string if the
        process is gone or its command line cannot be read
    """
    path = os.path.join(proc_root, str(pid), "cmdline")
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError:
        return ""

    args = raw.split(b"\0")
    if args and args[-1] == b"":
        args.pop()

    return " ".join(os.fsdecode(arg) for arg in args)


class CallerCmdline:
    """Command line of one request's caller, read on first use.

    One instance lives for a single resolution call, so the ``/proc`` read
    happens at most once per request no matter how many contexts ask.
    """

    def __init__(self, pid: int, reader: CmdlineReader = read_cmdline):
        self.pid = pid
        self._reader = reader
        self._value: Optional[str] = None

    @property
    def value(self) -> str:
        if self._value is None:
            self._value = self._reader(self.pid)
        return self._value

    def __str__(self) -> str:
        return self.value
