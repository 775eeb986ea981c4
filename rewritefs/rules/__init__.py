"""RewriteFS Rules System.

This module provides the path rewriting core:
- patterns: Regex compilation and matching with capture spans
- parser: Rule file parser producing caller contexts and rules
- engine: Resolution of virtual paths to real paths
- caller: Command line lookup of the requesting process
- autocreate: Parent directory creation under the caller's identity
"""

from .autocreate import AutoCreator
from .caller import CallerCmdline, read_cmdline
from .engine import (
    BackreferenceError,
    Config,
    Context,
    ResolutionRequest,
    Rule,
    RuleEngine,
    expand_template,
    resolve,
)
from .parser import ConfigParseError, RuleFileParser, load_config_file, parse_config
from .patterns import (
    CompiledRegex,
    MatchOutcome,
    MatchResult,
    RegexCompileError,
    compile_regex,
)

__all__ = [
    # Pattern matching
    "CompiledRegex",
    "MatchOutcome",
    "MatchResult",
    "RegexCompileError",
    "compile_regex",
    # Rule file
    "ConfigParseError",
    "RuleFileParser",
    "load_config_file",
    "parse_config",
    # Rule engine
    "BackreferenceError",
    "Config",
    "Context",
    "ResolutionRequest",
    "Rule",
    "RuleEngine",
    "expand_template",
    "resolve",
    # Collaborators
    "AutoCreator",
    "CallerCmdline",
    "read_cmdline",
]
