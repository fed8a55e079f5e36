from __future__ import annotations

import dataclasses
import enum
import logging
import os
import re
import sys
from typing import Callable
from typing import Mapping
from typing import Sequence

from . import __version__
from .treeconfig import read_config_to_string
from .treeconfig import tokenize
from .treeerrors import ArgumentParseError
from .treeerrors import ConfigurationError
from .treeerrors import PatternError
from .treeerrors import PatternNotProvidedError
from .treeerrors import RegexDisabledError
from .treefs import FileType
from .treegrammar import Grammar
from .treegrammar import GrammarError
from .treegrammar import Matches
from .treegrammar import Param
from .treegrammar import ValueSource
from .treenode import DirEntry
from .treeoverride import Override
from .treeoverride import OverrideBuilder
from .treesize import DiskUsage
from .treesize import PrefixKind

# Depth limit used when no `--level` is given
UNBOUNDED = sys.maxsize

# The parameter that names the directory to walk
DIR_ID = "dir"

logger = logging.getLogger(__name__)


class SortType(str, enum.Enum):
    """Order in which the contents of a directory are displayed."""

    NAME = "name"
    SIZE = "size"
    SIZE_REV = "size-rev"
    NONE = "none"


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError("must be zero or greater")
    return number


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise ValueError("must be at least 1")
    return number


def _choices(kind: type[enum.Enum]) -> tuple[str, ...]:
    return tuple(member.value for member in kind)


GRAMMAR = Grammar(
    [
        Param(DIR_ID, help="Directory to traverse; defaults to current working directory"),
        Param(
            "disk_usage",
            ("-d", "--disk-usage"),
            help="Print physical or logical file size",
            convert=DiskUsage,
            default=DiskUsage.PHYSICAL,
            choices=_choices(DiskUsage),
        ),
        Param("hidden", ("-.", "--hidden"), help="Show hidden files", switch=True, default=False),
        Param(
            "no_git",
            ("--no-git",),
            help="Disable traversal of .git directory when traversing hidden files",
            switch=True,
            default=False,
            requires="hidden",
        ),
        Param(
            "no_ignore",
            ("-i", "--no-ignore"),
            help="Do not respect .gitignore files",
            switch=True,
            default=False,
        ),
        Param(
            "follow",
            ("-f", "--follow"),
            help="Follow symlinks and consider their disk usage",
            switch=True,
            default=False,
        ),
        Param("icons", ("-I", "--icons"), help="Display file icons", switch=True, default=False),
        Param(
            "level",
            ("-L", "--level"),
            help="Maximum depth to display",
            convert=_non_negative_int,
            metavar="NUM",
        ),
        Param(
            "long",
            ("-l", "--long"),
            help="Show extended metadata and attributes",
            switch=True,
            default=False,
        ),
        Param(
            "pattern",
            ("-p", "--pattern"),
            help="Regular expression (or glob if '--glob' or '--iglob' is used) used to match files",
        ),
        Param(
            "glob",
            ("--glob",),
            help="Enables glob based searching",
            switch=True,
            default=False,
            requires="pattern",
        ),
        Param(
            "iglob",
            ("--iglob",),
            help="Enables case-insensitive glob based searching",
            switch=True,
            default=False,
            requires="pattern",
        ),
        Param(
            "prune",
            ("-P", "--prune"),
            help="Remove empty directories from output",
            switch=True,
            default=False,
        ),
        Param(
            "scale",
            ("-n", "--scale"),
            help="Total number of digits after the decimal to display for disk usage",
            convert=_non_negative_int,
            default=2,
            metavar="NUM",
        ),
        Param(
            "report",
            ("-r", "--report"),
            help="Print disk usage information in plain format without ASCII tree",
            switch=True,
            default=False,
        ),
        Param(
            "human",
            ("--human",),
            help="Print human-readable disk usage in report",
            switch=True,
            default=False,
            requires="report",
        ),
        Param(
            "file_name",
            ("--file-name",),
            help="Print file-name in report as opposed to full path",
            switch=True,
            default=False,
            requires="report",
        ),
        Param(
            "sort",
            ("-s", "--sort"),
            help="Sort-order to display directory content",
            convert=SortType,
            default=SortType.SIZE,
            choices=_choices(SortType),
        ),
        Param(
            "dirs_first",
            ("--dirs-first",),
            help="Sort directories above files",
            switch=True,
            default=False,
        ),
        Param(
            "threads",
            ("-t", "--threads"),
            help="Number of threads to use",
            convert=_positive_int,
            default=3,
            metavar="NUM",
        ),
        Param(
            "unit",
            ("-u", "--unit"),
            help="Report disk usage in binary or SI units",
            convert=PrefixKind,
            default=PrefixKind.BIN,
            choices=_choices(PrefixKind),
        ),
        Param("dirs_only", ("--dirs-only",), help="Only print directories", switch=True, default=False),
        Param(
            "no_color",
            ("--no-color",),
            help="Print plainly without ANSI escapes",
            switch=True,
            default=False,
        ),
        Param(
            "no_config",
            ("--no-config",),
            help="Don't read configuration file",
            switch=True,
            default=False,
        ),
        Param(
            "suppress_size",
            ("--suppress-size",),
            help="Omit disk usage from output",
            switch=True,
            default=False,
        ),
        Param("debug", ("--debug",), help="Enable debug logging", switch=True, default=False),
    ],
    prog="walk-tree",
    description=(
        "walk-tree is a multi-threaded file-tree visualization and disk usage analysis tool."
    ),
    version=f"walk-tree {__version__}",
)


@dataclasses.dataclass(frozen=True)
class Environment:
    """Terminal conditions detected once at start-up."""

    stdin_is_tty: bool = False
    stdout_is_tty: bool = False

    @classmethod
    def detect(cls) -> Environment:
        """Inspect the standard streams of the running process."""
        return cls(
            stdin_is_tty=_isatty(sys.stdin),
            stdout_is_tty=_isatty(sys.stdout),
        )


def _isatty(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


@dataclasses.dataclass
class DisplayWidths:
    """Column widths known only once every size has been computed. Set once."""

    max_du_width: int = 0
    max_nlink_width: int = 0
    final: bool = False

    def finalize(self, *, max_du_width: int, max_nlink_width: int) -> None:
        """
        Record the widths.

        Raises:
            RuntimeError: The widths were already recorded.
        """
        if self.final:
            raise RuntimeError("Display widths can only be set once")

        self.max_du_width = max_du_width
        self.max_nlink_width = max_nlink_width
        self.final = True


@dataclasses.dataclass(frozen=True)
class Context:
    """
    The resolved parameters of a run.

    Built once by `resolve_context`. Only `widths` changes afterwards, once,
    when the walk has finished computing sizes.
    """

    dir: str | None = None
    disk_usage: DiskUsage = DiskUsage.PHYSICAL
    hidden: bool = False
    no_git: bool = False
    no_ignore: bool = False
    follow: bool = False
    icons: bool = False
    level: int | None = None
    long: bool = False
    pattern: str | None = None
    glob: bool = False
    iglob: bool = False
    prune: bool = False
    scale: int = 2
    report: bool = False
    human: bool = False
    file_name: bool = False
    sort: SortType = SortType.SIZE
    dirs_first: bool = False
    threads: int = 3
    unit: PrefixKind = PrefixKind.BIN
    dirs_only: bool = False
    no_color: bool = False
    no_config: bool = False
    suppress_size: bool = False
    debug: bool = False

    environment: Environment = dataclasses.field(default_factory=Environment)
    sources: Mapping[str, ValueSource] = dataclasses.field(
        default_factory=dict,
        hash=False,
    )
    widths: DisplayWidths = dataclasses.field(
        default_factory=DisplayWidths,
        compare=False,
        hash=False,
        repr=False,
    )

    @classmethod
    def from_matches(
        cls,
        matches: Matches,
        *,
        environment: Environment,
        sources: Mapping[str, ValueSource] | None = None,
    ) -> Context:
        """Build a Context from validated Matches."""
        if sources is None:
            sources = {param.name: matches.source(param.name) for param in matches.grammar.params}

        return cls(**matches.values(), environment=environment, sources=dict(sources))

    def dir_path(self) -> str:
        """Return the directory to walk, defaulting to the working directory."""
        return self.dir if self.dir is not None else os.curdir

    def dir_bytes(self) -> bytes:
        """Return the directory to walk exactly as the bytes given by the user."""
        return os.fsencode(self.dir_path())

    def level_limit(self) -> int:
        """The max depth to display. Directories are still fully traversed for sizes."""
        return self.level if self.level is not None else UNBOUNDED

    def no_color_output(self) -> bool:
        """True if output must be plain, by request or because stdout is not a tty."""
        return self.no_color or not self.environment.stdout_is_tty

    @property
    def max_du_width(self) -> int:
        return self.widths.max_du_width

    @property
    def max_nlink_width(self) -> int:
        return self.widths.max_nlink_width

    def set_display_widths(self, max_size: int, max_nlink: int) -> None:
        """
        Record the widths of the disk usage and link count columns.

        Args:
            max_size: The largest size in bytes. Zero leaves the width at 0.
            max_nlink: The largest hard link count.
        """
        self.widths.finalize(
            max_du_width=len(str(max_size)) if max_size else 0,
            max_nlink_width=len(str(max_nlink)),
        )

    def overrides(self) -> Override:
        """
        Return the include/exclude globs for the walk.

        Raises:
            IgnorePolicyError
        """
        builder = OverrideBuilder(self.dir_path())

        if self.no_git:
            builder.add("!.git")

        if not self.glob and not self.iglob:
            return builder.build()

        if self.iglob:
            builder.case_insensitive(True)

        if self.pattern is not None:
            builder.add(self.pattern)

        return builder.build()

    def regex_predicate(self) -> Callable[[DirEntry], bool]:
        """
        Return a predicate that keeps directories and files whose name matches `pattern`.

        Raises:
            RegexDisabledError: Glob matching is enabled.
            PatternNotProvidedError: No pattern was given.
            PatternError: The pattern is not a valid regular expression.
        """
        if self.glob or self.iglob:
            raise RegexDisabledError()

        if self.pattern is None:
            raise PatternNotProvidedError()

        try:
            regex = re.compile(self.pattern)

        except re.error as error:
            raise PatternError(f"Invalid regex '{self.pattern}': {error}") from error

        def predicate(dir_entry: DirEntry) -> bool:
            if dir_entry.file_type is FileType.DIRECTORY:
                return True

            file_name = os.fsencode(dir_entry.file_name).decode("utf-8", errors="replace")
            return regex.search(file_name) is not None

        return predicate


def resolve_context(
    cli_args: Sequence[str] | None = None,
    *,
    environment: Environment | None = None,
    config_path: str | None = None,
    grammar: Grammar = GRAMMAR,
) -> Context:
    """
    Resolve the command line and the config file into a Context.

    Values given on the command line win over the config file, which wins over
    defaults. The winning tokens are re-assembled and parsed once more so that
    dependencies between params are checked the same way regardless of which
    source supplied each side.

    Args:
        cli_args: Tokens without the program name. Defaults to `sys.argv[1:]`.

    Keyword Args:
        environment: Terminal conditions. Defaults to probing the process.
        config_path: Read this config file instead of the default locations.
        grammar: The grammar to parse against.

    Raises:
        ArgumentParseError: The command line is invalid on its own.
        ConfigurationError: The config file or the merged tokens are invalid.
    """
    tokens = list(sys.argv[1:] if cli_args is None else cli_args)
    environment = environment or Environment.detect()

    try:
        user_args = grammar.parse(tokens, source=ValueSource.COMMAND_LINE, validate=False)
    except GrammarError as error:
        raise ArgumentParseError(error.message) from error

    if user_args.is_set("no_config"):
        logger.debug("Skipping config file, '--no-config' given")
        return _validated(grammar, user_args, environment, ArgumentParseError)

    content = read_config_to_string(config_path)
    if content is None:
        logger.debug("No config file found")
        return _validated(grammar, user_args, environment, ArgumentParseError)

    try:
        config_args = grammar.parse(
            tokenize(content),
            source=ValueSource.CONFIG_FILE,
            validate=False,
        )
    except GrammarError as error:
        raise ConfigurationError(f"Invalid config file: {error.message}") from error

    # A bare invocation takes everything from the config file
    if not user_args.args_present():
        return _validated(grammar, config_args, environment, ConfigurationError)

    args, sources = _reconcile(grammar, user_args, config_args)
    logger.debug("Reconciled arguments: %s", args)

    try:
        merged = grammar.parse(args, source=ValueSource.COMMAND_LINE, validate=True)
    except GrammarError as error:
        raise ConfigurationError(error.message) from error

    return Context.from_matches(merged, environment=environment, sources=sources)


def _validated(
    grammar: Grammar,
    matches: Matches,
    environment: Environment,
    error_type: type[ArgumentParseError] | type[ConfigurationError],
) -> Context:
    """Enforce dependencies on a single source and build the Context."""
    try:
        grammar.validate(matches)
    except GrammarError as error:
        raise error_type(error.message) from error

    return Context.from_matches(matches, environment=environment)


def _reconcile(
    grammar: Grammar,
    user_args: Matches,
    config_args: Matches,
) -> tuple[list[str], dict[str, ValueSource]]:
    """
    Pick the winning raw tokens per identifier.

    Returns:
        The re-assembled tokens and the source of every param's value.
    """
    ids = list(dict.fromkeys([*user_args.ids(), *config_args.ids()]))
    sources = {param.name: ValueSource.DEFAULT for param in grammar.params}

    args: list[str] = []
    positional: list[str] = []

    for name in ids:
        if name == DIR_ID:
            # Only ever taken from the user, bytes untouched
            raw = user_args.raw(name)
            if raw:
                positional.extend(raw)
                sources[name] = ValueSource.COMMAND_LINE
            continue

        if user_args.source(name) is ValueSource.COMMAND_LINE:
            winner = user_args
        elif config_args.raw(name) is not None:
            winner = config_args
        else:
            continue

        picked = pick_args_from(grammar.param(name), winner.raw(name) or ())
        args.extend(picked)
        sources[name] = winner.source(name)

    if positional:
        # `--` keeps a directory starting with `-` positional
        args.extend(["--", *positional])

    return args, sources


def pick_args_from(param: Param, raw_values: Sequence[str]) -> list[str]:
    """
    Turn the raw values of `param` back into tokens.

    Switches become a bare flag: a raw `true` keeps the flag only and a raw
    `false` drops it. Other params become `--flag=value`, one per value.
    """
    flag = param.long_flag

    if param.switch:
        if not raw_values or raw_values[-1] == "false":
            return []
        return [flag]

    return [f"{flag}={raw}" for raw in raw_values]
