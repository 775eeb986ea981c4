#!/usr/bin/env python3
"""Tests for the rule file parser."""

import pytest

from rewritefs.core.constants import ErrorCode
from rewritefs.rules.parser import ConfigParseError, load_config_file, parse_config
from rewritefs.rules.patterns import RegexCompileError


def only_rules(text):
    """Parse text and return the rules of the implicit default context."""
    contexts = parse_config(text)
    assert len(contexts) == 1
    return contexts[0].rules


class TestStructure:
    """Tests for contexts and rule grouping."""

    def test_empty_file(self):
        contexts = parse_config("")
        assert len(contexts) == 1
        assert contexts[0].is_default
        assert contexts[0].rules == ()

    def test_comments_and_blank_lines(self):
        contexts = parse_config("# nothing here\n\n   # indented comment\n")
        assert len(contexts) == 1
        assert contexts[0].rules == ()

    def test_rules_before_any_context_are_default(self):
        rules = only_rules("/^foo/ bar\n/^baz/ qux\n")
        assert [r.pattern.raw for r in rules] == ["^foo", "^baz"]
        assert [r.template for r in rules] == ["bar", "qux"]

    def test_caller_context(self):
        contexts = parse_config("-/^vim/\n/^x/ y\n")

        assert len(contexts) == 2
        assert contexts[0].rules == ()
        assert contexts[1].caller.raw == "^vim"
        assert contexts[1].describe() == "^vim"
        assert [r.template for r in contexts[1].rules] == ["y"]

    def test_bare_dash_returns_to_default(self):
        contexts = parse_config("-/^vim/\n/a/ b\n-\n/c/ d\n")

        assert len(contexts) == 3
        assert contexts[2].is_default
        assert contexts[2].rules[0].pattern.raw == "c"

    def test_empty_context_literal_is_default(self):
        contexts = parse_config("-//\n/c/ d\n")
        assert contexts[1].is_default

    def test_context_with_flags(self):
        contexts = parse_config("-/^VIM/i\n/a/ b\n")
        assert contexts[1].caller.match("vim -u NONE").matched

    def test_end_to_end_file(self):
        contexts = parse_config(
            "-/^myapp$/\n/^cache/(.*)$ /tmp/cache/\\1\n-\n/^logs/(.*)$ .\n"
        )

        assert [ctx.describe() for ctx in contexts] == ["default", "^myapp$", "default"]
        cache_rule = contexts[1].rules[0]
        assert cache_rule.pattern.raw == "^cache/(.*)$"
        assert cache_rule.template == "/tmp/cache/\\1"
        logs_rule = contexts[2].rules[0]
        assert logs_rule.pattern.raw == "^logs/(.*)$"
        assert logs_rule.passthrough


class TestRules:
    """Tests for rule literals and templates."""

    def test_passthrough_template(self):
        rule = only_rules("/^logs/ .\n")[0]
        assert rule.template is None
        assert rule.passthrough
        assert rule.describe() == "\"^logs\" -> \"(don't rewrite)\""

    def test_template_is_rest_of_line(self):
        rule = only_rules("/^a/ \t b c\r\n")[0]
        assert rule.template == "b c"

    def test_template_at_eof(self):
        assert only_rules("/^a/ b")[0].template == "b"

    def test_dot_prefix_is_not_passthrough(self):
        assert only_rules("/^a/ .config\n")[0].template == ".config"

    def test_flags(self):
        rule = only_rules("/^foo$/ix bar\n")[0]
        assert rule.pattern.flags == "ix"
        assert rule.pattern.match("/FOO", 1).matched

    def test_custom_delimiter(self):
        rule = only_rules("m#^a/b#i x\n")[0]
        assert rule.pattern.raw == "^a/b"
        assert rule.pattern.flags == "i"

    def test_escaped_delimiter(self):
        rule = only_rules("/^a\\/b/ x\n")[0]
        assert rule.pattern.raw == "^a/b"
        assert rule.pattern.match("/a/b", 1).matched

    def test_escaped_custom_delimiter(self):
        rule = only_rules("m#^a\\#b$# x\n")[0]
        assert rule.pattern.raw == "^a#b$"
        assert rule.pattern.match("/a#b", 1).matched
        assert not rule.pattern.match("/a", 1).matched

    def test_other_escapes_reach_the_engine(self):
        rule = only_rules("/^a\\.b\\d/ x\n")[0]
        assert rule.pattern.raw == "^a\\.b\\d"
        assert rule.pattern.match("/a.b1", 1).matched
        assert not rule.pattern.match("/axb1", 1).matched

    def test_inner_delimiter_without_flags_stays_in_body(self):
        rule = only_rules("/^cache/(.*)$/ /tmp/cache/\\1\n")[0]
        assert rule.pattern.raw == "^cache/(.*)$"
        assert rule.template == "/tmp/cache/\\1"

    def test_unclosed_literal_ends_at_first_blank(self):
        rule = only_rules("/^cache/(.*)$ /tmp/cache/\\1\n")[0]
        assert rule.pattern.raw == "^cache/(.*)$"
        assert rule.pattern.flags == ""
        assert rule.template == "/tmp/cache/\\1"


class TestErrors:
    """Tests for malformed rule files."""

    def test_unexpected_character(self):
        with pytest.raises(ConfigParseError) as exc_info:
            parse_config("foo bar\n")

        error = exc_info.value
        assert error.message == 'Unexpected character "f"'
        assert (error.line, error.column) == (1, 1)
        assert error.error_code == ErrorCode.INVALID_INPUT

    def test_error_position(self):
        with pytest.raises(ConfigParseError) as exc_info:
            parse_config("# comment\n/ok/ x\n  ?\n")
        assert (exc_info.value.line, exc_info.value.column) == (3, 3)

    def test_source_in_message(self):
        with pytest.raises(ConfigParseError) as exc_info:
            parse_config("?", source="rules.conf")
        assert str(exc_info.value) == 'rules.conf:1:1: Unexpected character "?"'

    def test_unknown_flag(self):
        with pytest.raises(ConfigParseError) as exc_info:
            parse_config("/^foo/q bar\n")

        assert exc_info.value.message == "Unknown flag q"
        assert exc_info.value.column == 7

    def test_missing_template(self):
        with pytest.raises(ConfigParseError, match="Missing rewrite template"):
            parse_config("/^foo/\n/^bar/ baz\n")

    def test_missing_template_at_eof(self):
        with pytest.raises(ConfigParseError, match="Missing rewrite template"):
            parse_config("/^foo/")

    def test_unterminated_rule_literal(self):
        with pytest.raises(ConfigParseError, match="Unterminated regular expression"):
            parse_config("/^foo\n")

    def test_unexpected_eof(self):
        with pytest.raises(ConfigParseError, match="Unexpected EOF"):
            parse_config("-/^vim")

    def test_eof_after_custom_delimiter_marker(self):
        with pytest.raises(ConfigParseError, match="Unexpected EOF"):
            parse_config("m")

    def test_whitespace_delimiter(self):
        with pytest.raises(ConfigParseError, match="Regex delimiter cannot be whitespace"):
            parse_config("m /a/ b\n")

    def test_context_needs_literal(self):
        with pytest.raises(ConfigParseError, match='Unexpected character "v"'):
            parse_config("- vim\n")

    def test_invalid_regex(self):
        with pytest.raises(ConfigParseError) as exc_info:
            parse_config("\n/a(/ x\n")

        error = exc_info.value
        assert "Invalid regular expression" in error.message
        assert (error.line, error.column) == (2, 1)
        assert isinstance(error.__cause__, RegexCompileError)


class TestLoadConfigFile:
    """Tests for reading rule files from disk."""

    def test_load(self, rule_file):
        contexts = load_config_file(str(rule_file))
        assert len(contexts) == 3

    def test_errors_name_the_file(self, temp_dir):
        path = temp_dir / "bad.conf"
        path.write_text("/ok/ x\n!\n")

        with pytest.raises(ConfigParseError) as exc_info:
            load_config_file(str(path))
        assert str(exc_info.value).startswith(f"{path}:2:1: ")

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigParseError) as exc_info:
            load_config_file(str(temp_dir / "missing.conf"))

        assert exc_info.value.error_code == ErrorCode.NOT_FOUND
        assert exc_info.value.message.startswith("opening config file:")
