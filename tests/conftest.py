"""Shared pytest fixtures for RewriteFS tests."""
import io
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

import pytest

from rewritefs.infrastructure.logger import Logger, set_global_logger
from rewritefs.rules.engine import Config, RuleEngine
from rewritefs.rules.parser import parse_config

END_TO_END_RULES = r"""-/^myapp$/
/^cache/(.*)$ /tmp/cache/\1
-
/^logs/(.*)$ .
"""


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def source_dir(temp_dir: Path) -> Path:
    """Create a source directory with test files."""
    source = temp_dir / "source"
    source.mkdir()

    (source / "file.txt").write_text("Hello World")
    (source / "subdir").mkdir()
    (source / "subdir" / "nested.txt").write_text("Nested content")
    (source / "dotfiles").mkdir()
    (source / "dotfiles" / "vimrc").write_text("set nocompatible")

    return source


@pytest.fixture
def mount_dir(temp_dir: Path) -> Path:
    """Create a mount point directory."""
    mount = temp_dir / "mount"
    mount.mkdir()
    return mount


@pytest.fixture
def rule_file(temp_dir: Path) -> Path:
    """Write the end-to-end rule file outside the mount point."""
    path = temp_dir / "rules.conf"
    path.write_text(END_TO_END_RULES)
    return path


@pytest.fixture
def log_stream() -> io.StringIO:
    """Stream receiving everything the test logger emits."""
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> Logger:
    """Logger writing bare messages to ``log_stream`` at full verbosity."""
    handler = logging.StreamHandler(log_stream)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    return Logger(name="rewritefs.test", level="DEBUG", handlers=[handler], verbosity=4)


@pytest.fixture
def make_engine(logger: Logger) -> Callable[..., RuleEngine]:
    """Build a RuleEngine from rule file text.

    ``cmdlines`` maps pid to command line; unknown pids read as "".
    """

    def factory(
        text: str,
        root: str = "/data",
        cmdlines: Optional[Dict[int, str]] = None,
        **config_kwargs,
    ) -> RuleEngine:
        cmdlines = cmdlines or {}
        config = Config(
            root=root,
            mount_point="/mnt",
            contexts=parse_config(text),
            **config_kwargs,
        )
        return RuleEngine(config, cmdline_reader=lambda pid: cmdlines.get(pid, ""), logger=logger)

    return factory


@pytest.fixture(autouse=True)
def reset_global_logger():
    """Reset the global logger between tests."""
    yield
    set_global_logger(None)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove REWRITEFS_* variables inherited from the test runner."""
    for key in list(os.environ):
        if key.startswith("REWRITEFS_"):
            monkeypatch.delenv(key)
