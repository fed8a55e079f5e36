from __future__ import annotations

import os

from .treecontext import Context
from .treenode import Node
from .treewalker import Tree

BRANCH = "├─ "
LAST_BRANCH = "└─ "
PIPE = "│  "
SPACE = "   "
SYMLINK_ARROW = " -> "


def render(tree: Tree, ctx: Context) -> str:
    """
    Render a walked Tree as text.

    Raises:
        RuntimeError: A snapshot in the tree was never finalized.
    """
    for node in tree:
        if not node.finalized:
            raise RuntimeError(f"Cannot render '{node.path}' before its size is final")

    lines = render_report(tree, ctx) if ctx.report else render_tree(tree, ctx)
    return "\n".join(lines)


def render_tree(tree: Tree, ctx: Context) -> list[str]:
    """Draw one line per node with box drawing prefixes and the size on the left."""
    size_width = max((len(_size_text(node, ctx, human=True)) for node in tree), default=0)
    lines: list[str] = []

    def draw(node: Node, prefix: str, connector: str) -> None:
        columns = [_long_columns(node, ctx)] if ctx.long else []
        if not ctx.suppress_size:
            columns.append(_size_text(node, ctx, human=True).rjust(size_width))
        columns.append(f"{prefix}{connector}{_display_name(node, ctx)}")
        lines.append(" ".join(columns))

        if not connector:
            child_prefix = prefix
        elif connector == LAST_BRANCH:
            child_prefix = prefix + SPACE
        else:
            child_prefix = prefix + PIPE

        kids = tree.children_of(node)
        for index, kid in enumerate(kids):
            last = index == len(kids) - 1
            draw(kid, child_prefix, LAST_BRANCH if last else BRANCH)

    draw(tree.root, "", "")
    return lines


def render_report(tree: Tree, ctx: Context) -> list[str]:
    """One line per node: type, size and path (or file name with `--file-name`)."""
    sizes = [_size_text(node, ctx, human=ctx.human) for node in tree]
    size_width = max((len(size) for size in sizes), default=0)
    if not ctx.human:
        size_width = max(size_width, ctx.max_du_width)

    lines: list[str] = []
    for node, size in zip(tree, sizes):
        columns = [node.file_type_identifier() or "?"]
        if ctx.long:
            columns.append(_long_columns(node, ctx))
        if not ctx.suppress_size:
            columns.append(size.rjust(size_width))

        name = node.file_name_lossy() if ctx.file_name else _lossy(node.path)
        columns.append(_paint(node, name, ctx))
        lines.append("  ".join(columns))

    return lines


def _size_text(node: Node, ctx: Context, *, human: bool) -> str:
    if ctx.suppress_size or node.file_size is None:
        return ""
    return node.file_size.format(human=human)


def _long_columns(node: Node, ctx: Context) -> str:
    """Permissions, an `@` when the entry has extended attributes, and the link count."""
    xattr_marker = "@" if node.has_xattrs() else " "
    nlink = node.nlink()
    nlink_text = "" if nlink is None else str(nlink)
    return f"{node.mode()}{xattr_marker} {nlink_text.rjust(ctx.max_nlink_width)}"


def _display_name(node: Node, ctx: Context) -> str:
    no_color = ctx.no_color_output()
    name = _paint(node, node.file_name_lossy(), ctx)

    if ctx.icons:
        name = f"{node.icon(no_color)} {name}"

    if node.symlink_target is not None:
        name += SYMLINK_ARROW + _lossy(node.symlink_target)

    return name


def _paint(node: Node, text: str, ctx: Context) -> str:
    if ctx.no_color_output() or node.style is None:
        return text
    return node.style.paint(text)


def _lossy(path: str) -> str:
    return os.fsencode(path).decode("utf-8", errors="replace")
