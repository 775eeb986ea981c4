"""Tests for startup validators."""
import os

import pytest

from rewritefs.core.constants import ErrorCode, Limits, RewriteError
from rewritefs.core.validators import (
    ValidationError,
    normalize_source,
    validate_config_file,
    validate_mount_collision,
    validate_mount_point,
    validate_path,
    validate_verbosity,
)


class TestValidatePath:
    """Test path validation."""

    def test_valid_path(self):
        assert validate_path("/tmp/data") is True

    def test_empty_path(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_path("")

    def test_non_string(self):
        with pytest.raises(ValidationError, match="must be string"):
            validate_path(42)

    def test_too_long(self):
        with pytest.raises(ValidationError, match="maximum length"):
            validate_path("/" + "a" * Limits.MAX_PATH_LENGTH)

    def test_null_byte(self):
        with pytest.raises(ValidationError, match="null bytes"):
            validate_path("/tmp/a\0b")

    def test_is_rewrite_error(self):
        with pytest.raises(RewriteError):
            validate_path("")


class TestNormalizeSource:
    """Test source directory canonicalization."""

    def test_missing(self):
        with pytest.raises(ValidationError, match="missing source argument"):
            normalize_source(None)

    def test_absolute_and_resolved(self, source_dir):
        assert normalize_source(str(source_dir)) == os.path.realpath(source_dir)

    def test_trailing_slash_stripped(self, source_dir):
        assert not normalize_source(str(source_dir) + "/").endswith("/")

    def test_relative(self, source_dir, monkeypatch):
        monkeypatch.chdir(source_dir.parent)
        assert normalize_source(source_dir.name) == os.path.realpath(source_dir)

    def test_symlink_resolved(self, source_dir, temp_dir):
        link = temp_dir / "link"
        link.symlink_to(source_dir)
        assert normalize_source(str(link)) == os.path.realpath(source_dir)

    def test_not_a_directory(self, source_dir):
        with pytest.raises(ValidationError) as exc_info:
            normalize_source(str(source_dir / "file.txt"))
        assert exc_info.value.error_code == ErrorCode.NOT_FOUND

    def test_nonexistent(self, temp_dir):
        with pytest.raises(ValidationError, match="Cannot open source directory"):
            normalize_source(str(temp_dir / "nope"))


class TestValidateMountPoint:
    """Test mount point validation."""

    def test_valid(self):
        assert validate_mount_point("/mnt/data") == "/mnt/data"

    def test_missing(self):
        with pytest.raises(ValidationError, match="missing mount point argument"):
            validate_mount_point(None)

    def test_empty(self):
        with pytest.raises(ValidationError, match="missing mount point argument"):
            validate_mount_point("")


class TestValidateMountCollision:
    """Test rule file vs. mount point check."""

    def test_no_config_file(self):
        assert validate_mount_collision(None, "/mnt") is True

    def test_outside(self):
        assert validate_mount_collision("/etc/rewritefs.conf", "/mnt") is True

    def test_inside(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_mount_collision("/mnt/rules.conf", "/mnt")
        assert exc_info.value.error_code == ErrorCode.CONFLICT

    def test_plain_prefix_is_a_collision(self):
        # Not canonicalized containment: any string prefix collides
        with pytest.raises(ValidationError):
            validate_mount_collision("/mnt2/rules.conf", "/mnt")

    def test_mount_inside_config_dir_is_fine(self):
        assert validate_mount_collision("/home/me/rules.conf", "/home/me/rules.conf.d/mnt")


class TestValidateConfigFile:
    """Test rule file accessibility."""

    def test_readable(self, rule_file):
        assert validate_config_file(str(rule_file)) is True

    def test_missing(self, temp_dir):
        with pytest.raises(ValidationError) as exc_info:
            validate_config_file(str(temp_dir / "missing.conf"))
        assert exc_info.value.error_code == ErrorCode.NOT_FOUND

    def test_directory(self, temp_dir):
        with pytest.raises(ValidationError, match="does not exist"):
            validate_config_file(str(temp_dir))

    @pytest.mark.skipif(os.geteuid() == 0, reason="root can read anything")
    def test_unreadable(self, rule_file):
        rule_file.chmod(0)
        try:
            with pytest.raises(ValidationError) as exc_info:
                validate_config_file(str(rule_file))
            assert exc_info.value.error_code == ErrorCode.PERMISSION_DENIED
        finally:
            rule_file.chmod(0o644)


class TestValidateVerbosity:
    """Test verbosity validation."""

    def test_none_is_quiet(self):
        assert validate_verbosity(None) == 0

    def test_int(self):
        assert validate_verbosity(3) == 3

    def test_numeric_string(self):
        assert validate_verbosity("4") == 4

    def test_levels_above_four_allowed(self):
        assert validate_verbosity(9) == 9

    def test_negative(self):
        with pytest.raises(ValidationError, match="non-negative"):
            validate_verbosity(-1)

    def test_not_a_number(self):
        with pytest.raises(ValidationError, match="must be an integer"):
            validate_verbosity("loud")

    def test_bool_rejected(self):
        with pytest.raises(ValidationError):
            validate_verbosity(True)
