from __future__ import annotations

import dataclasses
import enum
import logging
import os

import pathspec

from .treeerrors import IgnorePolicyError

logger = logging.getLogger(__name__)


class Match(enum.Enum):
    """Outcome of matching a path against overrides."""

    NONE = "none"
    IGNORE = "ignore"
    WHITELIST = "whitelist"


@dataclasses.dataclass(frozen=True)
class _Rule:
    glob: str
    whitelist: bool
    spec: pathspec.GitIgnoreSpec


class Override:
    """
    Gitignore style include/exclude globs relative to a root directory.

    A glob starting with `!` excludes what it matches, any other glob is a
    whitelist. The last matching glob decides. When at least one whitelist
    glob exists, files that match nothing are excluded; directories are not,
    so that a walk can still descend into them.
    """

    def __init__(self, root: str, rules: list[_Rule], *, case_insensitive: bool = False) -> None:
        self._root = root
        self._rules = rules
        self._case_insensitive = case_insensitive

    @property
    def root(self) -> str:
        return self._root

    def is_empty(self) -> bool:
        return not self._rules

    def num_whitelists(self) -> int:
        return sum(1 for rule in self._rules if rule.whitelist)

    def matched(self, path: str, is_dir: bool) -> Match:
        """Return how `path` is matched by the overrides."""
        if self.is_empty():
            return Match.NONE

        relative = self._relative(path, is_dir)
        if relative is None:
            return Match.NONE

        for rule in reversed(self._rules):
            if rule.spec.match_file(relative):
                return Match.WHITELIST if rule.whitelist else Match.IGNORE

        if self.num_whitelists() and not is_dir:
            return Match.IGNORE

        return Match.NONE

    def is_included(self, path: str, is_dir: bool) -> bool:
        """True unless the overrides exclude `path`."""
        return self.matched(path, is_dir) is not Match.IGNORE

    def _relative(self, path: str, is_dir: bool) -> str | None:
        """Return `path` relative to the root in posix form, or None for the root."""
        relative = os.path.relpath(path, self._root)
        if relative == os.curdir:
            return None

        relative = relative.replace(os.sep, "/")
        if self._case_insensitive:
            relative = relative.lower()

        return relative + "/" if is_dir else relative


class OverrideBuilder:
    """Collects globs for an Override."""

    def __init__(self, root: str) -> None:
        self._root = root
        self._globs: list[str] = []
        self._case_insensitive = False

    def add(self, glob: str) -> OverrideBuilder:
        """
        Add a glob. Prefix with `!` to exclude what it matches.

        Raises:
            IgnorePolicyError: The glob is empty.
        """
        body = glob[1:] if glob.startswith("!") else glob
        if not body.strip():
            raise IgnorePolicyError(f"Invalid override glob '{glob}': glob is empty")

        self._globs.append(glob)
        return self

    def case_insensitive(self, yes: bool) -> OverrideBuilder:
        """Match globs without regard to case."""
        self._case_insensitive = yes
        return self

    def build(self) -> Override:
        """
        Compile the collected globs.

        Raises:
            IgnorePolicyError: A glob is not a valid gitignore pattern.
        """
        rules: list[_Rule] = []

        for glob in self._globs:
            whitelist = not glob.startswith("!")
            body = glob if whitelist else glob[1:]
            if self._case_insensitive:
                body = body.lower()

            try:
                spec = pathspec.GitIgnoreSpec.from_lines([body])

            except ValueError as error:
                raise IgnorePolicyError(f"Invalid override glob '{glob}': {error}") from error

            rules.append(_Rule(glob=glob, whitelist=whitelist, spec=spec))

        logger.debug("Built %s override rules for %s", len(rules), self._root)
        return Override(self._root, rules, case_insensitive=self._case_insensitive)
