#!/usr/bin/env python3
r"""Rule engine deciding the real path behind each virtual path.

This module holds the parsed rule set and the resolution algorithm:
- Contexts selected by the caller's command line, in declared order
- Rules matched against the request path, first match wins
- Fallthrough to later contexts when a context has no matching rule
- Backreference expansion (``\1``, ``\2``...) in rewrite templates
- Optional creation of missing parent directories

Example:
    >>> config = Config(root="/data", mount_point="/mnt", contexts=(
    ...     Context(rules=(Rule(compile_regex(r"^foo/(.*)$"), r"bar/\1"),)),
    ... ))
    >>> RuleEngine(config).resolve(ResolutionRequest("/foo/baz/qux"))
    '/data/bar/baz/qux'
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from rewritefs.core.constants import ErrorCode, RewriteError, Verbosity
from rewritefs.infrastructure.logger import Logger, get_logger
from rewritefs.rules.autocreate import AutoCreator
from rewritefs.rules.caller import CallerCmdline, CmdlineReader, read_cmdline
from rewritefs.rules.patterns import CompiledRegex, MatchResult, compile_regex

BACKREFERENCE = re.compile(r"\\([0-9]+)")


class BackreferenceError(RewriteError):
    """A template refers to a group its rule did not capture."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.INTERNAL_ERROR)


@dataclass(frozen=True)
class Rule:
    """A path pattern with its rewrite template.

    A ``None`` template means the path is matched but left as is.
    """

    pattern: CompiledRegex
    template: Optional[str] = None

    @property
    def passthrough(self) -> bool:
        return self.template is None

    def describe(self) -> str:
        target = "(don't rewrite)" if self.template is None else self.template
        return f'"{self.pattern.raw}" -> "{target}"'


@dataclass(frozen=True)
class Context:
    """Rules that apply to callers whose command line matches ``caller``.

    A context without a caller pattern applies to every caller.
    """

    caller: Optional[CompiledRegex] = None
    rules: Tuple[Rule, ...] = ()

    @property
    def is_default(self) -> bool:
        return self.caller is None

    def describe(self) -> str:
        return "default" if self.caller is None else self.caller.raw


@dataclass(frozen=True)
class Config:
    """Everything resolution needs, built once at startup."""

    root: str
    mount_point: str
    contexts: Tuple[Context, ...] = ()
    verbosity: int = 0
    autocreate: bool = False
    config_file: Optional[str] = None

    @property
    def rule_count(self) -> int:
        return sum(len(ctx.rules) for ctx in self.contexts)


@dataclass(frozen=True)
class ResolutionRequest:
    """A single filesystem request to resolve."""

    path: str
    pid: int = 0
    uid: Optional[int] = None
    gid: Optional[int] = None


def _group_digits(digits: str, captures: int) -> int:
    """Length of the longest prefix of ``digits`` naming a capture group.

    Returns 0 when no prefix does (including a leading ``0``).
    """
    if digits.startswith("0"):
        return 0

    for length in range(len(digits), 0, -1):
        if int(digits[:length]) <= captures:
            return length
    return 0


def expand_template(template: str, match: MatchResult, captures: int) -> str:
    r"""Replace ``\N`` backreferences in a template with captured text.

    The template is scanned once from left to right; literal text is
    copied and each backreference is replaced by its group's text. ``N``
    is the longest run of digits that names an existing group, and any
    digits after it are copied as text: with one group, ``\10`` is group 1
    followed by ``0``. A backslash not followed by a digit is kept as is.

    Args:
        template: Rewrite template
        match: Successful match of the rule's pattern
        captures: Number of capture groups in the rule's pattern

    Returns:
        Expanded template

    Raises:
        BackreferenceError: If a backreference names no existing group or
            a group that did not participate in the match
    """
    parts = []
    position = 0

    for ref in BACKREFERENCE.finditer(template):
        digits = ref.group(1)
        length = _group_digits(digits, captures)
        if length == 0:
            raise BackreferenceError(
                f"Template {template!r} refers to group {digits} but the pattern "
                f"has {captures} capture group(s)"
            )

        index = int(digits[:length])
        text = match.group(index)
        if text is None:
            raise BackreferenceError(
                f"Template {template!r} refers to group {index}, which did not "
                f"participate in the match"
            )

        parts.append(template[position:ref.start()])
        parts.append(text)
        position = ref.start(1) + length

    parts.append(template[position:])
    return "".join(parts)


class RuleEngine:
    """Resolve virtual paths to real paths against an immutable Config.

    The engine holds no per-request state, so a single instance is shared
    by all FUSE worker threads.
    """

    def __init__(
        self,
        config: Config,
        cmdline_reader: CmdlineReader = read_cmdline,
        autocreator: Optional[AutoCreator] = None,
        logger: Optional[Logger] = None,
    ):
        """Initialize rule engine.

        Args:
            config: Parsed configuration
            cmdline_reader: Callable returning a process' command line
            autocreator: Parent directory creator (created if autocreate is
                enabled and None is given)
            logger: Logger for diagnostics (global logger if None)
        """
        self.config = config
        self.cmdline_reader = cmdline_reader
        self.logger = logger if logger is not None else get_logger()

        if autocreator is None and config.autocreate:
            autocreator = AutoCreator(logger=self.logger)
        self.autocreator = autocreator

    def resolve(self, request: ResolutionRequest) -> str:
        """Resolve a request to a real path.

        Args:
            request: Virtual path and caller identity

        Returns:
            Absolute real path (never rejected)

        Raises:
            BackreferenceError: If the winning rule's template does not fit
                its pattern
        """
        self.logger.trace(Verbosity.TRACE, f"{request.path}:")

        found = self.find_rule(request)
        if found is None:
            return self.apply_rule(request, None, None)

        rule, match = found
        return self.apply_rule(request, rule, match)

    def find_rule(self, request: ResolutionRequest) -> Optional[Tuple[Rule, MatchResult]]:
        """Find the first rule matching the request.

        Contexts are tried in order. A context whose caller pattern does not
        match is skipped. A context that matches but has no matching rule
        does not end the search: later contexts are still tried.

        Args:
            request: Request to match

        Returns:
            (rule, match) of the winning rule, or None
        """
        caller = CallerCmdline(request.pid, self.cmdline_reader)

        for ctx in self.config.contexts:
            if not self._context_applies(ctx, caller):
                continue

            for rule in ctx.rules:
                match = rule.pattern.match(request.path, 1)
                if match.matched:
                    self.logger.trace(
                        Verbosity.TRACE, f"    RULE OK {rule.describe()}"
                    )
                    return rule, match

                if match.failed:
                    self._warn_engine_error(rule.pattern, match)
                self.logger.trace(
                    Verbosity.TRACE, f'    RULE NOMATCH "{rule.pattern.raw}"'
                )

        return None

    def _context_applies(self, ctx: Context, caller: CallerCmdline) -> bool:
        if ctx.caller is None:
            self.logger.trace(Verbosity.TRACE, "  CTX DEFAULT")
            return True

        match = ctx.caller.match(caller.value)
        if match.failed:
            self._warn_engine_error(ctx.caller, match)

        if not match.matched:
            self.logger.trace(Verbosity.TRACE, f'  CTX NOMATCH "{ctx.caller.raw}"')
            return False

        self.logger.trace(Verbosity.TRACE, f'  CTX OK "{ctx.caller.raw}"')
        return True

    def _warn_engine_error(self, pattern: CompiledRegex, match: MatchResult) -> None:
        self.logger.warning(
            "regex engine error, treating as no match",
            pattern=pattern.raw,
            error=match.error,
        )

    def apply_rule(
        self,
        request: ResolutionRequest,
        rule: Optional[Rule],
        match: Optional[MatchResult],
    ) -> str:
        """Build the real path for a request.

        Without a rule, or with a passthrough rule, the result is the root
        followed by the virtual path. Otherwise the matched part of the path
        is replaced by the expanded template. A template expanding to an
        absolute path replaces the root and everything before the match.

        Args:
            request: Request being resolved
            rule: Winning rule, or None
            match: Match of the winning rule, or None

        Returns:
            Absolute real path
        """
        path = request.path
        root = self.config.root

        if rule is None or rule.passthrough or match is None:
            real_path = root + path
            self.logger.trace(Verbosity.PASSTHROUGH, f"  (ignored) {path} -> {real_path}")
            self.logger.trace(Verbosity.TRACE, "")
            return real_path

        replacement = expand_template(rule.template, match, rule.pattern.captures)
        before = path[: match.start]
        after = path[match.end:]

        if self.logger.is_verbose(Verbosity.FRAGMENTS):
            self.logger.trace(Verbosity.FRAGMENTS, f"  orig_fs = {root}")
            self.logger.trace(Verbosity.FRAGMENTS, f"  begin = {before}")
            self.logger.trace(Verbosity.FRAGMENTS, f"  rewritten = {rule.template}")
            self.logger.trace(Verbosity.FRAGMENTS, f"  end = {after}")

        if replacement.startswith("/"):
            # Absolute templates name a real path outside the backing root
            real_path = replacement + after
        else:
            real_path = root + before + replacement + after

        if self.config.autocreate and self.autocreator is not None:
            self.autocreator.create_parents(real_path, request.uid, request.gid)

        self.logger.trace(Verbosity.DECISIONS, f"  {path} -> {real_path}")
        self.logger.trace(Verbosity.TRACE, "")
        return real_path

    def log_rules(self) -> None:
        """Log the context/rule table at verbosity 1."""
        for ctx in self.config.contexts:
            self.logger.trace(Verbosity.DECISIONS, f'CTX "{ctx.describe()}":')
            for rule in ctx.rules:
                self.logger.trace(Verbosity.DECISIONS, f"  {rule.describe()}")


def resolve(config: Config, request: ResolutionRequest, **kwargs) -> str:
    """Resolve a single request without keeping an engine around.

    Args:
        config: Parsed configuration
        request: Request to resolve
        **kwargs: Passed to :class:`RuleEngine`

    Returns:
        Absolute real path
    """
    return RuleEngine(config, **kwargs).resolve(request)


__all__ = [
    "BackreferenceError",
    "Config",
    "Context",
    "ResolutionRequest",
    "Rule",
    "RuleEngine",
    "compile_regex",
    "expand_template",
    "resolve",
]
