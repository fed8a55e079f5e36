from __future__ import annotations

__version__ = "0.1.0"

from .treecontext import Context  # noqa: E402
from .treecontext import resolve_context  # noqa: E402
from .treenode import DirEntry  # noqa: E402
from .treenode import Node  # noqa: E402
from .treewalker import Walker  # noqa: E402

__all__ = [
    "Context",
    "DirEntry",
    "Node",
    "Walker",
    "resolve_context",
]
