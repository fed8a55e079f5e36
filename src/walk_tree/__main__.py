from __future__ import annotations

import logging
import sys

from walk_tree.treecontext import resolve_context
from walk_tree.treeerrors import WalkTreeError
from walk_tree.treerender import render
from walk_tree.treewalker import Walker

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("walk_tree")


def main(*, cli_args: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        ctx = resolve_context(cli_args)

    except WalkTreeError as error:
        # Logging is not configured until the context is known
        print(f"walk-tree: {error}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if ctx.debug else logging.WARNING,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    logger.debug("Resolved context: %s", ctx)

    try:
        tree = Walker(ctx).walk()

    except WalkTreeError as error:
        logger.error("%s", error)
        return 1

    print(render(tree, ctx))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
