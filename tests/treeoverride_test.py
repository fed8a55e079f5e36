from __future__ import annotations

import os

import pytest

from walk_tree.treeerrors import IgnorePolicyError
from walk_tree.treeoverride import Match
from walk_tree.treeoverride import OverrideBuilder

ROOT = os.path.join(os.sep, "project")


def _path(*parts: str) -> str:
    return os.path.join(ROOT, *parts)


def test_empty_override_matches_nothing() -> None:
    override = OverrideBuilder(ROOT).build()

    assert override.is_empty()
    assert override.matched(_path("a.txt"), False) is Match.NONE


def test_whitelist_excludes_unmatched_files() -> None:
    override = OverrideBuilder(ROOT).add("*.rs").build()

    assert override.num_whitelists() == 1
    assert override.matched(_path("src", "main.rs"), False) is Match.WHITELIST
    assert override.matched(_path("README.md"), False) is Match.IGNORE


def test_whitelist_keeps_unmatched_directories() -> None:
    override = OverrideBuilder(ROOT).add("*.rs").build()

    assert override.matched(_path("src"), True) is Match.NONE
    assert override.is_included(_path("src"), True)


def test_negated_glob_ignores() -> None:
    override = OverrideBuilder(ROOT).add("!target").build()

    assert override.matched(_path("target"), True) is Match.IGNORE
    assert override.matched(_path("src"), True) is Match.NONE
    assert override.matched(_path("main.rs"), False) is Match.NONE


def test_last_matching_glob_wins() -> None:
    override = OverrideBuilder(ROOT).add("*.rs").add("!build.rs").build()

    assert override.matched(_path("build.rs"), False) is Match.IGNORE
    assert override.matched(_path("main.rs"), False) is Match.WHITELIST


def test_root_is_never_matched() -> None:
    override = OverrideBuilder(ROOT).add("!*").build()

    assert override.matched(ROOT, True) is Match.NONE


def test_case_insensitive() -> None:
    override = OverrideBuilder(ROOT).add("*.MD").case_insensitive(True).build()

    assert override.matched(_path("readme.md"), False) is Match.WHITELIST
    assert override.matched(_path("README.Md"), False) is Match.WHITELIST


def test_case_sensitive_by_default() -> None:
    override = OverrideBuilder(ROOT).add("*.MD").build()

    assert override.matched(_path("readme.md"), False) is Match.IGNORE


@pytest.mark.parametrize("glob", ["", "!", "   "])
def test_empty_glob_raises(glob: str) -> None:
    with pytest.raises(IgnorePolicyError):
        OverrideBuilder(ROOT).add(glob)

