from __future__ import annotations

import os
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from walk_tree.treeconfig import tokenize
from walk_tree.treecontext import GRAMMAR
from walk_tree.treecontext import UNBOUNDED
from walk_tree.treecontext import Context
from walk_tree.treecontext import Environment
from walk_tree.treecontext import SortType
from walk_tree.treecontext import _reconcile
from walk_tree.treecontext import pick_args_from
from walk_tree.treecontext import resolve_context
from walk_tree.treeerrors import ArgumentParseError
from walk_tree.treeerrors import ConfigurationError
from walk_tree.treeerrors import PatternError
from walk_tree.treeerrors import PatternNotProvidedError
from walk_tree.treeerrors import RegexDisabledError
from walk_tree.treefs import FileType
from walk_tree.treegrammar import ValueSource
from walk_tree.treenode import DirEntry
from walk_tree.treesize import DiskUsage
from walk_tree.treesize import PrefixKind

ENV = Environment()


@pytest.fixture
def write_config(tmp_path: Path):
    config = tmp_path / "config.ini"

    def _write(*lines: str) -> str:
        config.write_text("[walk-tree]\n" + "\n".join(lines) + "\n", encoding="utf-8")
        return str(config)

    return _write


def test_defaults_without_config(tmp_path: Path) -> None:
    ctx = resolve_context([], environment=ENV, config_path=str(tmp_path / "missing.ini"))

    assert ctx.dir is None
    assert ctx.disk_usage is DiskUsage.PHYSICAL
    assert ctx.sort is SortType.SIZE
    assert ctx.unit is PrefixKind.BIN
    assert ctx.threads == 3
    assert ctx.scale == 2
    assert ctx.sources["sort"] is ValueSource.DEFAULT


def test_command_line_beats_config(write_config) -> None:
    config = write_config("sort = name", "icons")

    ctx = resolve_context(["--sort", "size-rev"], environment=ENV, config_path=config)

    assert ctx.sort is SortType.SIZE_REV
    assert ctx.icons is True
    assert ctx.sources["sort"] is ValueSource.COMMAND_LINE
    assert ctx.sources["icons"] is ValueSource.CONFIG_FILE
    assert ctx.sources["long"] is ValueSource.DEFAULT


def test_config_beats_defaults(write_config) -> None:
    config = write_config("unit = si", "threads = 8")

    ctx = resolve_context(["--long"], environment=ENV, config_path=config)

    assert ctx.unit is PrefixKind.SI
    assert ctx.threads == 8
    assert ctx.long is True


def test_bare_invocation_takes_config(write_config) -> None:
    config = write_config("hidden = true", "level = 2", "disk_usage = logical")

    ctx = resolve_context([], environment=ENV, config_path=config)
    expected = Context.from_matches(
        GRAMMAR.parse(
            tokenize(Path(config).read_text(encoding="utf-8")),
            source=ValueSource.CONFIG_FILE,
        ),
        environment=ENV,
    )

    assert ctx == expected
    assert ctx.level == 2
    assert ctx.disk_usage is DiskUsage.LOGICAL
    assert ctx.sources["hidden"] is ValueSource.CONFIG_FILE


def test_dependency_satisfied_by_config(write_config) -> None:
    config = write_config("hidden = true")

    ctx = resolve_context(["--no-git"], environment=ENV, config_path=config)

    assert ctx.no_git is True
    assert ctx.hidden is True


def test_dependency_missing_without_config(tmp_path: Path) -> None:
    with pytest.raises(ArgumentParseError):
        resolve_context(
            ["--no-git"],
            environment=ENV,
            config_path=str(tmp_path / "missing.ini"),
        )


def test_dependency_missing_from_both_sources(write_config) -> None:
    config = write_config("icons = true")

    with pytest.raises(ConfigurationError):
        resolve_context(["--no-git"], environment=ENV, config_path=config)


def test_dependency_missing_in_config_alone(write_config) -> None:
    config = write_config("glob = true")

    with pytest.raises(ConfigurationError):
        resolve_context([], environment=ENV, config_path=config)


def test_user_false_overrides_config_true(write_config) -> None:
    config = write_config("hidden = true")

    ctx = resolve_context(["--hidden=false"], environment=ENV, config_path=config)

    assert ctx.hidden is False
    assert ctx.sources["hidden"] is ValueSource.COMMAND_LINE


def test_config_false_keeps_switch_off(write_config) -> None:
    config = write_config("icons = false")

    ctx = resolve_context(["--long"], environment=ENV, config_path=config)

    assert ctx.icons is False


def test_no_config_ignores_config_file(write_config) -> None:
    config = write_config("icons = true", "sort = name")

    ctx = resolve_context(["--no-config"], environment=ENV, config_path=config)

    assert ctx.icons is False
    assert ctx.sort is SortType.SIZE
    assert ctx.no_config is True


def test_invalid_command_line(tmp_path: Path) -> None:
    with pytest.raises(ArgumentParseError):
        resolve_context(
            ["--threads", "lots"],
            environment=ENV,
            config_path=str(tmp_path / "missing.ini"),
        )


def test_invalid_config_value(write_config) -> None:
    config = write_config("threads = 0")

    with pytest.raises(ConfigurationError):
        resolve_context(["--long"], environment=ENV, config_path=config)


def test_unknown_config_key(write_config) -> None:
    config = write_config("colour = always")

    with pytest.raises(ConfigurationError):
        resolve_context([], environment=ENV, config_path=config)


def test_resolution_is_idempotent(write_config) -> None:
    config = write_config("hidden = true", "sort = name")
    args = ["--no-git", "-L", "3", "src"]

    first = resolve_context(args, environment=ENV, config_path=config)
    second = resolve_context(args, environment=ENV, config_path=config)

    assert first == second


def test_directory_starting_with_dash(write_config) -> None:
    config = write_config("icons")

    ctx = resolve_context(["--long", "--", "-odd"], environment=ENV, config_path=config)

    assert ctx.dir == "-odd"
    assert ctx.sources["dir"] is ValueSource.COMMAND_LINE


@pytest.mark.skipif(os.name != "posix", reason="surrogate escapes are POSIX only")
def test_directory_bytes_are_preserved(write_config) -> None:
    config = write_config("icons")
    raw_dir = os.fsdecode(b"caf\xff")

    ctx = resolve_context(["--long", raw_dir], environment=ENV, config_path=config)

    assert ctx.dir_bytes() == b"caf\xff"


def test_reconciled_args_have_no_literal_switch_values() -> None:
    user_args = GRAMMAR.parse(["--hidden=true", "--pattern=-x"], validate=False)
    config_args = GRAMMAR.parse(
        ["--long=true", "--icons=false"],
        source=ValueSource.CONFIG_FILE,
        validate=False,
    )

    args, sources = _reconcile(GRAMMAR, user_args, config_args)

    assert args == ["--hidden", "--pattern=-x", "--long"]
    assert sources["icons"] is ValueSource.CONFIG_FILE
    assert sources["hidden"] is ValueSource.COMMAND_LINE


@pytest.mark.parametrize(
    "name, raw, expected",
    [
        ("hidden", ("true",), ["--hidden"]),
        ("hidden", ("false",), []),
        ("hidden", (), []),
        ("no_git", ("true",), ["--no-git"]),
        ("sort", ("name",), ["--sort=name"]),
        ("pattern", ("-weird",), ["--pattern=-weird"]),
    ],
)
def test_pick_args_from(name: str, raw: tuple[str, ...], expected: list[str]) -> None:
    assert pick_args_from(GRAMMAR.param(name), raw) == expected


@given(
    user_scale=st.integers(min_value=0, max_value=9),
    config_scale=st.integers(min_value=0, max_value=9),
)
def test_command_line_always_wins(tmp_path: Path, user_scale: int, config_scale: int) -> None:
    config = tmp_path / "config.ini"
    config.write_text(f"[walk-tree]\nscale = {config_scale}\n", encoding="utf-8")

    ctx = resolve_context(
        ["--scale", str(user_scale)],
        environment=ENV,
        config_path=str(config),
    )

    assert ctx.scale == user_scale


def test_dir_path_defaults_to_current_directory() -> None:
    assert Context().dir_path() == os.curdir
    assert Context(dir="src").dir_path() == "src"


def test_level_limit() -> None:
    assert Context().level_limit() == UNBOUNDED
    assert Context(level=0).level_limit() == 0


@pytest.mark.parametrize(
    "no_color, stdout_is_tty, expected",
    [
        (False, True, False),
        (True, True, True),
        (False, False, True),
    ],
)
def test_no_color_output(no_color: bool, stdout_is_tty: bool, expected: bool) -> None:
    ctx = Context(no_color=no_color, environment=Environment(stdout_is_tty=stdout_is_tty))

    assert ctx.no_color_output() is expected


def test_display_widths_are_set_once() -> None:
    ctx = Context()

    ctx.set_display_widths(123456, 12)

    assert ctx.max_du_width == 6
    assert ctx.max_nlink_width == 2

    with pytest.raises(RuntimeError):
        ctx.set_display_widths(1, 1)


def test_display_width_of_zero_size() -> None:
    ctx = Context()

    ctx.set_display_widths(0, 1)

    assert ctx.max_du_width == 0


def test_regex_predicate() -> None:
    predicate = Context(pattern=r"\.rs$").regex_predicate()

    assert predicate(DirEntry("src/main.rs", 1, FileType.FILE)) is True
    assert predicate(DirEntry("src/main.py", 1, FileType.FILE)) is False
    assert predicate(DirEntry("src", 1, FileType.DIRECTORY)) is True


def test_regex_predicate_disabled_with_glob() -> None:
    with pytest.raises(RegexDisabledError):
        Context(pattern="*.rs", glob=True).regex_predicate()


def test_regex_predicate_without_pattern() -> None:
    with pytest.raises(PatternNotProvidedError):
        Context().regex_predicate()


def test_regex_predicate_invalid_pattern() -> None:
    with pytest.raises(PatternError):
        Context(pattern="(").regex_predicate()


def test_glob_overrides(tmp_path: Path) -> None:
    overrides = Context(dir=str(tmp_path), pattern="*.rs", glob=True).overrides()

    assert overrides.is_included(str(tmp_path / "main.rs"), False) is True
    assert overrides.is_included(str(tmp_path / "main.py"), False) is False
    assert overrides.is_included(str(tmp_path / "src"), True) is True


def test_iglob_overrides_ignore_case(tmp_path: Path) -> None:
    overrides = Context(dir=str(tmp_path), pattern="*.RS", iglob=True).overrides()

    assert overrides.is_included(str(tmp_path / "main.rs"), False) is True
    assert overrides.is_included(str(tmp_path / "MAIN.Rs"), False) is True


def test_no_git_override(tmp_path: Path) -> None:
    overrides = Context(dir=str(tmp_path), hidden=True, no_git=True).overrides()

    assert overrides.is_included(str(tmp_path / ".git"), True) is False
    assert overrides.is_included(str(tmp_path / ".github"), True) is True


def test_regex_pattern_adds_no_override(tmp_path: Path) -> None:
    overrides = Context(dir=str(tmp_path), pattern="*.rs").overrides()

    assert overrides.is_empty()


def test_regex_predicate_disabled_with_iglob() -> None:
    with pytest.raises(RegexDisabledError):
        Context(pattern=r"\.rs$", iglob=True).regex_predicate()


SWITCHES = ("icons", "long", "prune", "dirs_first", "follow", "no_ignore")
SWITCH_STATE = st.sampled_from([None, True, False])


@given(
    user=st.fixed_dictionaries({name: SWITCH_STATE for name in SWITCHES}),
    config=st.fixed_dictionaries({name: SWITCH_STATE for name in SWITCHES}),
)
def test_switch_precedence(
    tmp_path: Path,
    user: dict[str, bool | None],
    config: dict[str, bool | None],
) -> None:
    config_file = tmp_path / "switches.ini"
    config_file.write_text(
        "[walk-tree]\n"
        + "".join(
            f"{name} = {str(value).lower()}\n"
            for name, value in config.items()
            if value is not None
        ),
        encoding="utf-8",
    )
    cli_args = [
        f"--{name.replace('_', '-')}={str(value).lower()}"
        for name, value in user.items()
        if value is not None
    ]

    first = resolve_context(cli_args, environment=ENV, config_path=str(config_file))
    second = resolve_context(cli_args, environment=ENV, config_path=str(config_file))

    assert first == second
    for name in SWITCHES:
        if user[name] is not None:
            expected = user[name]
        elif config[name] is not None:
            expected = config[name]
        else:
            expected = False
        assert getattr(first, name) is expected
