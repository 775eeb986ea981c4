#!/usr/bin/env python3
r"""Regular expression compilation and matching for rewrite rules.

This module wraps Python's ``re`` engine behind the small interface the
rule engine needs:
- Compilation from a pattern body plus rule-file flag letters
- Capture group counting
- Matching with explicit capture spans
- Distinguishing a clean non-match from an engine failure

Flag letters follow the rule file syntax: ``i`` (case-insensitive), ``x``
(extended, whitespace and comments ignored) and ``u`` (Unicode character
properties). Without ``u`` the pattern is compiled with ``re.ASCII`` so
``\w``, ``\d`` and ``\s`` only match ASCII characters.

Example:
    >>> regex = compile_regex(r"^foo/(.*)$", "i")
    >>> result = regex.match("/FOO/bar", 1)
    >>> result.matched, result.group(1)
    (True, 'bar')
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern, Tuple

from rewritefs.core.constants import ErrorCode, RewriteError, Syntax

Span = Tuple[int, int]

FLAG_MAP = {
    Syntax.FLAG_CASELESS: re.IGNORECASE,
    Syntax.FLAG_EXTENDED: re.VERBOSE,
}


class RegexCompileError(RewriteError):
    """A pattern was rejected by the regex engine."""

    def __init__(self, message: str, pattern: str, offset: Optional[int] = None):
        self.pattern = pattern
        self.offset = offset
        super().__init__(message, ErrorCode.INVALID_INPUT)

    def __str__(self) -> str:
        where = f" at offset {self.offset}" if self.offset is not None else ""
        return f"{self.message}{where}. Regular expression was: {self.pattern}"


class MatchOutcome(Enum):
    """Result kind of a single match attempt."""

    NO_MATCH = "no_match"
    MATCHED = "matched"
    ENGINE_ERROR = "engine_error"


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching a compiled pattern against a subject.

    ``captures`` holds one span per group, index 0 being the whole match.
    Spans are offsets into the full subject passed to
    :meth:`CompiledRegex.match`, not into the anchored tail. A group that
    did not take part in the match has a ``None`` span.
    """

    outcome: MatchOutcome
    subject: str = ""
    captures: Tuple[Optional[Span], ...] = ()
    error: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.outcome is MatchOutcome.MATCHED

    @property
    def failed(self) -> bool:
        return self.outcome is MatchOutcome.ENGINE_ERROR

    @property
    def start(self) -> int:
        return self.captures[0][0]

    @property
    def end(self) -> int:
        return self.captures[0][1]

    def group(self, index: int) -> Optional[str]:
        """Return the text of a capture group.

        Args:
            index: Group number (0 = whole match)

        Returns:
            Captured text, or None if the group is out of range or did not
            participate in the match
        """
        if not self.matched or index < 0 or index >= len(self.captures):
            return None

        span = self.captures[index]
        if span is None:
            return None
        return self.subject[span[0]:span[1]]

    def __bool__(self) -> bool:
        return self.matched


NO_MATCH = MatchResult(MatchOutcome.NO_MATCH)


@dataclass(frozen=True)
class CompiledRegex:
    """An immutable compiled pattern with its source kept for diagnostics."""

    regex: Pattern[str]
    captures: int
    raw: str
    flags: str = ""

    def match(self, subject: str, offset: int = 0) -> MatchResult:
        """Search the subject for the pattern.

        The search starts at ``offset`` and ``^`` anchors there, as if the
        subject began at that position.

        Args:
            subject: String to search
            offset: Position to anchor the search at

        Returns:
            MatchResult with spans relative to the full subject
        """
        try:
            found = self.regex.search(subject[offset:])
        except (TypeError, ValueError, RecursionError) as e:
            return MatchResult(MatchOutcome.ENGINE_ERROR, subject=subject, error=str(e))

        if found is None:
            return MatchResult(MatchOutcome.NO_MATCH, subject=subject)

        captures = []
        for index in range(self.captures + 1):
            start, end = found.span(index)
            if start == -1:
                captures.append(None)
            else:
                captures.append((start + offset, end + offset))

        return MatchResult(MatchOutcome.MATCHED, subject=subject, captures=tuple(captures))

    def __str__(self) -> str:
        return self.raw


def parse_flags(flags: str) -> int:
    """Translate rule-file flag letters into ``re`` flags.

    Args:
        flags: Flag letters, e.g. ``"ix"``

    Returns:
        Combined ``re`` flags

    Raises:
        ValueError: On an unknown flag letter (the letter is the message)
    """
    re_flags = 0
    unicode = False

    for letter in flags:
        if letter == Syntax.FLAG_UNICODE:
            unicode = True
        elif letter in FLAG_MAP:
            re_flags |= FLAG_MAP[letter]
        else:
            raise ValueError(letter)

    if not unicode:
        re_flags |= re.ASCII

    return re_flags


def compile_regex(pattern: str, flags: str = "") -> CompiledRegex:
    """Compile a pattern body with rule-file flags.

    Args:
        pattern: Regular expression body
        flags: Flag letters (``i``, ``x``, ``u``)

    Returns:
        Compiled regex

    Raises:
        RegexCompileError: If a flag is unknown or the engine rejects the pattern
    """
    try:
        re_flags = parse_flags(flags)
    except ValueError as e:
        raise RegexCompileError(f"Unknown flag {e}", pattern)

    try:
        regex = re.compile(pattern, re_flags)
    except re.error as e:
        offset = None
        if e.pos is not None:
            # Report a byte offset into the UTF-8 encoded pattern
            offset = len(pattern[: e.pos].encode("utf-8", "surrogateescape"))
        raise RegexCompileError(f"Invalid regular expression: {e.msg}", pattern, offset)

    return CompiledRegex(regex=regex, captures=regex.groups, raw=pattern, flags=flags)
