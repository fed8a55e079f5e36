from __future__ import annotations

import dataclasses
import logging
import os
import stat
from typing import TYPE_CHECKING

from .treeerrors import MetadataError
from .treefs import PLATFORM
from .treefs import Capabilities
from .treefs import FileType
from .treefs import Inode
from .treefs import Unsupported
from .treefs import extended_attributes
from .treefs import symlink_target
from .treesize import DiskUsage
from .treesize import FileSize
from .treestyle import LsColors
from .treestyle import Style
from .treestyle import compute_icon
from .treestyle import get_ls_colors

if TYPE_CHECKING:
    from .treecontext import Context

logger = logging.getLogger(__name__)

# Types recognized where the platform is not Unix
_PORTABLE_TYPES = (FileType.DIRECTORY, FileType.FILE, FileType.SYMLINK)


@dataclasses.dataclass(frozen=True)
class DirEntry:
    """
    A filesystem handle as yielded by a walk.

    Attributes:
        path: The os native path, undecodable bytes surrogate escaped.
        depth: Distance from the walk root, which has depth 0.
        file_type: Type of the entry, of its target when `follow` is set.
        follow: Whether symlinks are resolved when fetching metadata.
    """

    path: str
    depth: int
    file_type: FileType | None
    follow: bool = False

    @classmethod
    def from_path(cls, path: str, depth: int = 0, *, follow: bool = False) -> DirEntry:
        """
        Build a DirEntry by querying the filesystem for the type of `path`.

        Raises:
            OSError
        """
        metadata = os.stat(path) if follow else os.lstat(path)
        return cls(path, depth, FileType.from_mode(metadata.st_mode), follow)

    @property
    def file_name(self) -> str:
        return os.path.basename(os.path.normpath(self.path))

    def metadata(self) -> os.stat_result:
        """
        Return the stat metadata of the entry.

        Raises:
            OSError
        """
        return os.stat(self.path) if self.follow else os.lstat(self.path)


@dataclasses.dataclass(frozen=True)
class Node:
    """
    Immutable snapshot of a filesystem entry, ready to render.

    Any filesystem I/O happens in `build`. `file_size` is only ever set for
    regular files at build time; directories receive theirs once through
    `finalize` after their subtree has been summed.
    """

    dir_entry: DirEntry
    metadata: os.stat_result
    file_size: FileSize | None = None
    style: Style | None = None
    symlink_target: str | None = None
    inode: Inode | None = None
    xattrs: tuple[str, ...] | None = None
    finalized: bool = True

    @classmethod
    def build(
        cls,
        dir_entry: DirEntry,
        ctx: Context,
        *,
        ls_colors: LsColors | None = None,
        capabilities: Capabilities = PLATFORM,
    ) -> Node:
        """
        Snapshot `dir_entry` according to `ctx`.

        Args:
            dir_entry: The handle to snapshot.
            ctx: The resolved parameters of the run.

        Keyword Args:
            ls_colors: Color table to style with. Defaults to the process table.
            capabilities: What the platform can report. Defaults to the host.

        Raises:
            MetadataError: The metadata of the entry can't be read.
        """
        path = dir_entry.path
        link_target = symlink_target(path)

        try:
            metadata = dir_entry.metadata()

        except OSError as error:
            raise MetadataError(path, error) from error

        table = ls_colors if ls_colors is not None else get_ls_colors()
        style = table.style_for_path(path, metadata) or Style()

        file_size = None
        if dir_entry.file_type is FileType.FILE and not ctx.suppress_size:
            if ctx.disk_usage is DiskUsage.LOGICAL:
                file_size = FileSize.logical(metadata, ctx.unit, ctx.scale)
            else:
                file_size = FileSize.physical(metadata, ctx.unit, ctx.scale, capabilities)

        inode = _read_inode(path, metadata, capabilities)

        xattrs = None
        if ctx.long:
            xattrs = _read_xattrs(dir_entry, capabilities)

        return cls(
            dir_entry=dir_entry,
            metadata=metadata,
            file_size=file_size,
            style=style,
            symlink_target=link_target,
            inode=inode,
            xattrs=xattrs,
            finalized=dir_entry.file_type is not FileType.DIRECTORY,
        )

    def finalize(self, file_size: FileSize | None) -> Node:
        """
        Return this snapshot with its aggregated size filled in.

        Raises:
            RuntimeError: The snapshot was already finalized.
        """
        if self.finalized:
            raise RuntimeError(f"Snapshot of '{self.path}' is already finalized")
        return dataclasses.replace(self, file_size=file_size, finalized=True)

    @property
    def path(self) -> str:
        return self.dir_entry.path

    @property
    def depth(self) -> int:
        return self.dir_entry.depth

    @property
    def file_name(self) -> str:
        """The name of the entry. For a symlink this is the link, not its target."""
        return self.dir_entry.file_name

    @property
    def file_type(self) -> FileType | None:
        return self.dir_entry.file_type

    def file_name_lossy(self) -> str:
        """Return the name as text, replacing undecodable bytes with U+FFFD."""
        return os.fsencode(self.file_name).decode("utf-8", errors="replace")

    def parent_path(self) -> str | None:
        parent = os.path.dirname(os.path.normpath(self.path))
        return parent or None

    def is_dir(self) -> bool:
        return self.file_type is FileType.DIRECTORY

    def is_symlink(self) -> bool:
        return self.symlink_target is not None

    def symlink_target_file_name(self) -> str | None:
        if self.symlink_target is None:
            return None
        return os.path.basename(os.path.normpath(self.symlink_target))

    def ino(self) -> int | None:
        return self.inode.ino if self.inode else None

    def nlink(self) -> int | None:
        return self.inode.nlink if self.inode else None

    def has_xattrs(self) -> bool:
        return bool(self.xattrs)

    def mode(self) -> str:
        """Return the permissions in symbolic notation, e.g. `drwxr-xr-x`."""
        return stat.filemode(self.metadata.st_mode)

    def file_type_identifier(self, capabilities: Capabilities = PLATFORM) -> str | None:
        """Return the `ls -l` style type character, or None if unknown."""
        if self.file_type is None:
            return None
        if not capabilities.unix and self.file_type not in _PORTABLE_TYPES:
            return None
        return self.file_type.value

    def icon(self, no_color: bool) -> str:
        """Return the icon of the entry, colored with its style unless `no_color`."""
        return compute_icon(
            self.path,
            self.symlink_target,
            is_dir=self.is_dir(),
            style=None if no_color else self.style,
        )


def _read_inode(path: str, metadata: os.stat_result, capabilities: Capabilities) -> Inode | None:
    try:
        return Inode.from_metadata(metadata, capabilities)

    except Unsupported:
        logger.debug("No inode identity for '%s' on this platform", path)
        return None


def _read_xattrs(dir_entry: DirEntry, capabilities: Capabilities) -> tuple[str, ...] | None:
    try:
        return extended_attributes(
            dir_entry.path,
            follow_symlinks=dir_entry.follow,
            capabilities=capabilities,
        )

    except Unsupported:
        logger.debug("No extended attributes on this platform")
        return None

    except OSError as error:
        logger.debug("Could not list extended attributes of '%s': %s", dir_entry.path, error)
        return None
