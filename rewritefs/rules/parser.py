#!/usr/bin/env python3
r"""Parser for the RewriteFS rule file.

The rule file is a sequence of items separated by whitespace:

    # comment up to the end of the line
    -/^myapp$/                      caller context (regex on the cmdline)
    /^cache\/(.*)$/ /tmp/cache/\1   rule: path regex, then a template
    m#^logs/(.*)$#i .               custom delimiter, flags, passthrough
    -                               back to the default context

Regex literals are ``/body/flags`` or ``m<d>body<d>flags``. A backslash
before the delimiter puts a literal delimiter in the body; other
backslash sequences go to the regex engine untouched. A delimiter only
closes the literal when it is followed by a run of flag letters and then
whitespace, so ``/^cache/(.*)$/`` keeps its inner slash. A rule literal
that is not closed on its line ends at its first blank:
``/^cache/(.*)$ /tmp/cache/\1`` reads the same as the form above.

Flags are ``i`` (case-insensitive), ``x`` (extended) and ``u`` (Unicode).
A template of exactly ``.`` leaves matching paths unrewritten.

Errors are raised as :class:`ConfigParseError`; there is no recovery.

Example:
    >>> contexts = parse_config("-/^myapp$/\n/^cache/ tmp\n")
    >>> [ctx.describe() for ctx in contexts]
    ['default', '^myapp$']
"""

import string
from typing import List, Optional, Tuple

from rewritefs.core.constants import ErrorCode, RewriteError, Syntax
from rewritefs.rules.engine import Context, Rule
from rewritefs.rules.patterns import CompiledRegex, RegexCompileError, compile_regex

BLANKS = " \t"
FLAG_LETTERS = frozenset(string.ascii_letters)
VALID_FLAGS = frozenset(
    (Syntax.FLAG_CASELESS, Syntax.FLAG_EXTENDED, Syntax.FLAG_UNICODE)
)


class ConfigParseError(RewriteError):
    """The rule file is malformed."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        column: Optional[int] = None,
        source: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.INVALID_INPUT,
    ):
        self.line = line
        self.column = column
        self.source = source
        super().__init__(message, error_code)

    def __str__(self) -> str:
        where = []
        if self.source:
            where.append(self.source)
        if self.line is not None:
            where.append(str(self.line))
            if self.column is not None:
                where.append(str(self.column))
        if where:
            return f"{':'.join(where)}: {self.message}"
        return self.message


class RuleFileParser:
    """Recursive-descent parser over the text of a rule file.

    One instance parses one text; call :meth:`parse` once.
    """

    def __init__(self, text: str, source: Optional[str] = None):
        self.text = text
        self.source = source
        self.pos = 0

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Optional[str]:
        index = self.pos + offset
        if index < len(self.text):
            return self.text[index]
        return None

    def _error(self, message: str, pos: Optional[int] = None) -> ConfigParseError:
        if pos is None:
            pos = self.pos
        pos = min(pos, len(self.text))
        line = self.text.count("\n", 0, pos) + 1
        column = pos - (self.text.rfind("\n", 0, pos) + 1) + 1
        return ConfigParseError(message, line, column, self.source)

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _skip_blanks(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in BLANKS:
            self.pos += 1

    def _skip_comment(self) -> None:
        end = self.text.find("\n", self.pos)
        self.pos = len(self.text) if end == -1 else end + 1

    def _line_end(self, pos: int) -> int:
        end = self.text.find("\n", pos)
        return len(self.text) if end == -1 else end

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def parse(self) -> Tuple[Context, ...]:
        """Parse the whole text.

        Returns:
            Contexts in declaration order, starting with the implicit
            default context that owns rules declared before any context

        Raises:
            ConfigParseError: On the first malformed item
        """
        declared: List[Tuple[Optional[CompiledRegex], List[Rule]]] = [(None, [])]

        while True:
            self._skip_whitespace()
            c = self._peek()

            if c is None:
                break
            elif c == Syntax.COMMENT:
                self._skip_comment()
            elif c == Syntax.CONTEXT:
                self.pos += 1
                declared.append((self._parse_context(), []))
            elif c == Syntax.SLASH or c == Syntax.CUSTOM_DELIMITER:
                declared[-1][1].append(self._parse_rule())
            else:
                raise self._error(f'Unexpected character "{c}"')

        return tuple(Context(caller=caller, rules=tuple(rules)) for caller, rules in declared)

    def _parse_context(self) -> Optional[CompiledRegex]:
        """Parse what follows ``-``; None means the default context."""
        self._skip_blanks()

        c = self._peek()
        if c is None or c in "\r\n":
            return None

        regex = self._parse_regex(for_rule=False)
        if regex.raw == "":
            return None
        return regex

    def _parse_rule(self) -> Rule:
        regex = self._parse_regex(for_rule=True)

        self._skip_blanks()
        end = self._line_end(self.pos)
        template = self.text[self.pos:end].rstrip("\r")
        self.pos = end

        if not template:
            raise self._error("Missing rewrite template")

        if template == Syntax.PASSTHROUGH:
            return Rule(pattern=regex, template=None)
        return Rule(pattern=regex, template=template)

    # ------------------------------------------------------------------
    # Regex literals
    # ------------------------------------------------------------------

    def _parse_delimiter(self) -> str:
        c = self._peek()
        if c == Syntax.SLASH:
            self.pos += 1
            return c

        if c != Syntax.CUSTOM_DELIMITER:
            if c is None:
                raise self._error("Unexpected EOF")
            raise self._error(f'Unexpected character "{c}"')

        self.pos += 1
        delimiter = self._peek()
        if delimiter is None:
            raise self._error("Unexpected EOF")
        if delimiter.isspace():
            raise self._error("Regex delimiter cannot be whitespace")
        self.pos += 1
        return delimiter

    def _parse_regex(self, for_rule: bool) -> CompiledRegex:
        literal_start = self.pos
        delimiter = self._parse_delimiter()
        body, flags = self._read_literal(delimiter, for_rule)

        for flag in flags:
            if flag not in VALID_FLAGS:
                raise self._error(f"Unknown flag {flag}", self.pos - len(flags))

        try:
            return compile_regex(body, flags)
        except RegexCompileError as e:
            raise ConfigParseError(
                str(e), *self._location(literal_start), source=self.source
            ) from e

    def _location(self, pos: int) -> Tuple[int, int]:
        error = self._error("", pos)
        return error.line, error.column

    def _closing_flags(self, pos: int) -> Optional[Tuple[str, bool]]:
        """Decide whether the delimiter at ``pos`` closes the literal.

        Returns:
            None if the delimiter belongs to the body, otherwise the flag
            run following it and whether text follows on the same line
        """
        end = pos + 1
        while end < len(self.text) and not self.text[end].isspace():
            end += 1

        flags = self.text[pos + 1:end]
        if any(c not in FLAG_LETTERS for c in flags):
            return None

        rest = end
        while rest < len(self.text) and self.text[rest] in BLANKS:
            rest += 1
        followed = rest < len(self.text) and self.text[rest] not in "\r\n"

        return flags, followed

    def _read_literal(self, delimiter: str, for_rule: bool) -> Tuple[str, str]:
        """Read a literal body and flags, leaving pos after the flags.

        Context literals may span lines. Rule literals end on their own
        line, and need a template after them on that line.

        Returns:
            (body, flags)

        Raises:
            ConfigParseError: If the literal is not terminated
        """
        text = self.text
        body: List[str] = []
        i = self.pos
        first_blank: Optional[Tuple[int, int]] = None
        missing_template = False

        while True:
            c = text[i] if i < len(text) else None

            if c is None or (c == "\n" and for_rule):
                if for_rule and first_blank is not None:
                    blank_pos, body_len = first_blank
                    if text[blank_pos:i].strip():
                        self.pos = blank_pos
                        return "".join(body[:body_len]), ""
                if missing_template:
                    raise self._error("Missing rewrite template", i)
                if c is None:
                    raise self._error("Unexpected EOF", i)
                raise self._error("Unterminated regular expression", i)

            if c == Syntax.ESCAPE and i + 1 < len(text) and text[i + 1] != "\n":
                if text[i + 1] == delimiter:
                    body.append(delimiter)
                else:
                    body.append(c)
                    body.append(text[i + 1])
                i += 2
                continue

            if c == delimiter:
                closing = self._closing_flags(i)
                if closing is not None:
                    flags, followed = closing
                    if followed or not for_rule:
                        self.pos = i + 1 + len(flags)
                        return "".join(body), flags
                    missing_template = True
            elif c in BLANKS and first_blank is None:
                first_blank = (i, len(body))

            body.append(c)
            i += 1


def parse_config(text: str, source: Optional[str] = None) -> Tuple[Context, ...]:
    """Parse rule file text.

    Args:
        text: Rule file contents
        source: Name used in error messages (usually the file path)

    Returns:
        Contexts in declaration order

    Raises:
        ConfigParseError: If the text is malformed
    """
    return RuleFileParser(text, source).parse()


def load_config_file(path: str) -> Tuple[Context, ...]:
    """Read and parse a rule file.

    Args:
        path: Path to the rule file

    Returns:
        Contexts in declaration order

    Raises:
        ConfigParseError: If the file cannot be read or is malformed
    """
    try:
        with open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigParseError(
            f"opening config file: {e.strerror}", source=path, error_code=ErrorCode.NOT_FOUND
        )
    except OSError as e:
        raise ConfigParseError(
            f"opening config file: {e.strerror}",
            source=path,
            error_code=ErrorCode.PERMISSION_DENIED,
        )

    return parse_config(text, source=path)
