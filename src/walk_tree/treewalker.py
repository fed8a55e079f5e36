from __future__ import annotations

import dataclasses
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable
from typing import Iterator
from typing import Mapping

import pathspec

from .treecontext import Context
from .treecontext import SortType
from .treeerrors import IgnorePolicyError
from .treeerrors import MetadataError
from .treefs import PLATFORM
from .treefs import Capabilities
from .treefs import FileType
from .treenode import DirEntry
from .treenode import Node
from .treeoverride import Override
from .treesize import FileSize
from .treestyle import LsColors

GITIGNORE = ".gitignore"


@dataclasses.dataclass(frozen=True)
class _IgnoreFile:
    """The rules of one .gitignore, relative to the directory holding it."""

    base: str
    spec: pathspec.GitIgnoreSpec

    def decide(self, path: str, is_dir: bool) -> bool | None:
        """True if ignored, False if a `!` rule re-includes it, None if no rule matches."""
        relative = os.path.relpath(path, self.base).replace(os.sep, "/")
        return self.spec.check_file(relative + "/" if is_dir else relative).include


@dataclasses.dataclass(frozen=True)
class Tree:
    """Finalized snapshots of a walk, with the children of each directory in display order."""

    root: Node
    children: Mapping[str, tuple[Node, ...]]

    def children_of(self, node: Node) -> tuple[Node, ...]:
        return self.children.get(node.path, ())

    def __iter__(self) -> Iterator[Node]:
        """Yield every displayed node, parents before their children."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(self.children_of(node)))

    def __len__(self) -> int:
        return sum(1 for _ in self)


class Walker:
    """Walk the directory of a Context and snapshot every entry."""

    logger = logging.getLogger(__name__)

    def __init__(
        self,
        ctx: Context,
        *,
        ls_colors: LsColors | None = None,
        capabilities: Capabilities = PLATFORM,
    ) -> None:
        """
        Initialize a new Walker.

        Args:
            ctx: The resolved parameters of the run. Its display widths are
                set by `walk`, so a Context can only be walked once.

        Keyword Args:
            ls_colors: Color table to style with. Defaults to the process table.
            capabilities: What the platform can report. Defaults to the host.

        Raises:
            IgnorePolicyError: The override globs are malformed.
            PatternError: The search pattern is not a valid regex.
        """
        self._ctx = ctx
        self._ls_colors = ls_colors
        self._capabilities = capabilities
        self._overrides: Override = ctx.overrides()
        self._predicate: Callable[[DirEntry], bool] | None = None

        if ctx.pattern is not None and not ctx.glob and not ctx.iglob:
            self._predicate = ctx.regex_predicate()

    def walk(self) -> Tree:
        """
        Walk, snapshot and aggregate.

        Raises:
            MetadataError: The root directory can't be described.
            IgnorePolicyError: A .gitignore file holds a malformed rule.
        """
        tic = time.perf_counter()

        root_path = self._ctx.dir_path()
        try:
            root_entry = DirEntry.from_path(root_path, 0, follow=True)
        except OSError as error:
            raise MetadataError(root_path, error) from error

        root = self._build(root_entry)
        parents: dict[DirEntry, str] = {}
        if root_entry.file_type is FileType.DIRECTORY:
            parents = dict(self._traverse(root_entry))

        nodes = self._build_all(list(parents))

        tree = self._aggregate(root, nodes, parents)

        toc = time.perf_counter()
        self.logger.info("Walked %s entries in %s seconds", len(nodes) + 1, toc - tic)
        return tree

    def _traverse(self, root: DirEntry) -> Iterator[tuple[DirEntry, str]]:
        """Yield every entry below `root` that passes the filters, with its parent path."""
        ctx = self._ctx
        visited: set[tuple[int, int]] = set()
        stack: list[tuple[DirEntry, list[_IgnoreFile]]] = [(root, [])]

        while stack:
            directory, ignore_files = stack.pop()

            if not self._first_visit(directory, visited):
                self.logger.debug("Skipping '%s', already visited", directory.path)
                continue

            if not ctx.no_ignore:
                ignore_files = ignore_files + self._read_ignore_file(directory.path)

            try:
                with os.scandir(directory.path) as scanner:
                    children = list(scanner)

            except OSError as error:
                self.logger.warning("Could not read directory '%s': %s", directory.path, error)
                continue

            for child in children:
                entry = self._entry_for(child, directory.depth + 1)
                if not self._is_included(entry, ignore_files):
                    continue

                yield entry, directory.path

                if entry.file_type is FileType.DIRECTORY:
                    stack.append((entry, ignore_files))

    def _entry_for(self, child: os.DirEntry[str], depth: int) -> DirEntry:
        follow = self._ctx.follow
        try:
            file_type = FileType.from_mode(child.stat(follow_symlinks=follow).st_mode)

        except OSError as error:
            # Broken links when following, or entries removed mid-walk
            self.logger.debug("Could not stat '%s': %s", child.path, error)
            file_type = FileType.SYMLINK if child.is_symlink() else None

        return DirEntry(child.path, depth, file_type, follow)

    def _first_visit(self, directory: DirEntry, visited: set[tuple[int, int]]) -> bool:
        """Record `directory` as visited. False if it was seen before (symlink loops)."""
        if not self._ctx.follow:
            return True

        try:
            metadata = os.stat(directory.path)
        except OSError:
            return True

        key = (metadata.st_dev, metadata.st_ino)
        if key in visited:
            return False

        visited.add(key)
        return True

    def _is_included(self, entry: DirEntry, ignore_files: list[_IgnoreFile]) -> bool:
        is_dir = entry.file_type is FileType.DIRECTORY

        if not self._ctx.hidden and entry.file_name.startswith("."):
            return False

        if self._is_ignored(entry.path, is_dir, ignore_files):
            self.logger.debug("Ignoring '%s' per %s", entry.path, GITIGNORE)
            return False

        if not self._overrides.is_included(entry.path, is_dir):
            return False

        if self._predicate is not None and not self._predicate(entry):
            return False

        return True

    @staticmethod
    def _is_ignored(path: str, is_dir: bool, ignore_files: list[_IgnoreFile]) -> bool:
        # The deepest .gitignore with a matching rule decides
        for ignore_file in reversed(ignore_files):
            ignored = ignore_file.decide(path, is_dir)
            if ignored is not None:
                return ignored
        return False

    def _read_ignore_file(self, directory: str) -> list[_IgnoreFile]:
        """
        Return the .gitignore rules of `directory`, if it has any.

        Raises:
            IgnorePolicyError
        """
        path = os.path.join(directory, GITIGNORE)
        try:
            with open(path, encoding="utf-8", errors="ignore") as ignore_file:
                lines = ignore_file.read().splitlines()

        except OSError:
            return []

        try:
            spec = pathspec.GitIgnoreSpec.from_lines(lines)

        except ValueError as error:
            raise IgnorePolicyError(f"Invalid rule in '{path}': {error}") from error

        return [_IgnoreFile(directory, spec)]

    def _build(self, entry: DirEntry) -> Node:
        return Node.build(
            entry,
            self._ctx,
            ls_colors=self._ls_colors,
            capabilities=self._capabilities,
        )

    def _try_build(self, entry: DirEntry) -> Node | None:
        try:
            return self._build(entry)

        except MetadataError as error:
            self.logger.warning("Skipping entry: %s", error)
            return None

    def _build_all(self, entries: list[DirEntry]) -> list[Node]:
        """Snapshot entries on a pool of `ctx.threads` workers, keeping their order."""
        with ThreadPoolExecutor(
            max_workers=self._ctx.threads,
            thread_name_prefix="walk-tree",
        ) as executor:
            results = list(executor.map(self._try_build, entries))

        return [node for node in results if node is not None]

    def _aggregate(self, root: Node, nodes: list[Node], parents: dict[DirEntry, str]) -> Tree:
        """
        Sum directory sizes bottom-up, finalize directories and set display widths.

        Runs on a single thread once every snapshot exists.
        """
        ctx = self._ctx
        children: dict[str, list[Node]] = {}
        for node in nodes:
            children.setdefault(parents[node.dir_entry], []).append(node)

        finalized: dict[str, Node] = {}
        directories = [node for node in [root, *nodes] if not node.finalized]

        for directory in sorted(directories, key=lambda node: node.depth, reverse=True):
            kids = [finalized.get(kid.path, kid) for kid in children.get(directory.path, [])]
            children[directory.path] = kids
            finalized[directory.path] = directory.finalize(self._sum_sizes(kids))

        root = finalized.get(root.path, root)

        display = self._display_children(root, children)

        sizes = [node.file_size.bytes for node in Tree(root, display) if node.file_size]
        nlinks = [node.nlink() or 0 for node in Tree(root, display)]
        ctx.set_display_widths(max(sizes, default=0), max(nlinks, default=0))

        return Tree(root, display)

    def _sum_sizes(self, kids: list[Node]) -> FileSize | None:
        ctx = self._ctx
        if ctx.suppress_size:
            return None

        total = FileSize(0, ctx.disk_usage, ctx.unit, ctx.scale)
        for kid in kids:
            if kid.file_size is not None:
                total = total + kid.file_size
        return total

    def _display_children(
        self,
        root: Node,
        children: dict[str, list[Node]],
    ) -> dict[str, tuple[Node, ...]]:
        """Apply pruning, dirs-only, the display level and sorting."""
        ctx = self._ctx
        level = ctx.level_limit()
        display: dict[str, tuple[Node, ...]] = {}

        def has_files(node: Node) -> bool:
            return any(not kid.is_dir() or has_files(kid) for kid in children.get(node.path, []))

        def visit(node: Node) -> None:
            kids = [kid for kid in children.get(node.path, []) if kid.depth <= level]

            if ctx.prune:
                kids = [kid for kid in kids if not kid.is_dir() or has_files(kid)]

            if ctx.dirs_only:
                kids = [kid for kid in kids if kid.is_dir()]

            display[node.path] = tuple(sort_nodes(kids, ctx.sort, dirs_first=ctx.dirs_first))
            for kid in kids:
                if kid.is_dir():
                    visit(kid)

        visit(root)
        return display


def sort_nodes(nodes: list[Node], sort: SortType, *, dirs_first: bool = False) -> list[Node]:
    """Return `nodes` in display order."""
    if sort is SortType.NAME:
        ordered = sorted(nodes, key=lambda node: node.file_name_lossy())
    elif sort is SortType.SIZE:
        ordered = sorted(nodes, key=lambda node: (-_size_key(node), node.file_name_lossy()))
    elif sort is SortType.SIZE_REV:
        ordered = sorted(nodes, key=lambda node: (_size_key(node), node.file_name_lossy()))
    else:
        ordered = list(nodes)

    if dirs_first:
        ordered.sort(key=lambda node: not node.is_dir())

    return ordered


def _size_key(node: Node) -> int:
    return node.file_size.bytes if node.file_size else 0
