from __future__ import annotations

import dataclasses
import enum
import logging
import os
import stat

BLOCK_SIZE = 512

logger = logging.getLogger(__name__)


class Unsupported(Exception):
    """The queried data does not exist on this platform."""


@dataclasses.dataclass(frozen=True)
class Capabilities:
    """What the current platform can report about a filesystem entry."""

    unix: bool
    inodes: bool
    xattrs: bool
    physical_size: bool

    @classmethod
    def detect(cls) -> Capabilities:
        """Detect what the running interpreter and OS support."""
        unix = os.name == "posix"
        return cls(
            unix=unix,
            inodes=unix,
            xattrs=hasattr(os, "listxattr"),
            physical_size=hasattr(os.stat_result, "st_blocks"),
        )


PLATFORM = Capabilities.detect()


class FileType(enum.Enum):
    """The kind of a filesystem entry, with its `ls -l` identifier."""

    DIRECTORY = "d"
    FILE = "-"
    SYMLINK = "l"
    FIFO = "p"
    SOCKET = "s"
    CHAR_DEVICE = "c"
    BLOCK_DEVICE = "b"

    @classmethod
    def from_mode(cls, mode: int) -> FileType | None:
        """Return the FileType of an `st_mode`, or None if unrecognized."""
        for predicate, file_type in (
            (stat.S_ISDIR, cls.DIRECTORY),
            (stat.S_ISREG, cls.FILE),
            (stat.S_ISLNK, cls.SYMLINK),
            (stat.S_ISFIFO, cls.FIFO),
            (stat.S_ISSOCK, cls.SOCKET),
            (stat.S_ISCHR, cls.CHAR_DEVICE),
            (stat.S_ISBLK, cls.BLOCK_DEVICE),
        ):
            if predicate(mode):
                return file_type
        return None


@dataclasses.dataclass(frozen=True)
class Inode:
    """Identity of an entry: the device it lives on, its inode and link count."""

    dev: int
    ino: int
    nlink: int

    @classmethod
    def from_metadata(
        cls,
        metadata: os.stat_result,
        capabilities: Capabilities = PLATFORM,
    ) -> Inode:
        """
        Build an Inode from stat metadata.

        Raises:
            Unsupported: The platform has no stable inode numbers.
        """
        if not capabilities.inodes:
            raise Unsupported("inode identity")
        return cls(dev=metadata.st_dev, ino=metadata.st_ino, nlink=metadata.st_nlink)


def symlink_target(path: str) -> str | None:
    """Return the target of `path` if it is a readable symlink, else None."""
    if not os.path.islink(path):
        return None

    try:
        return os.readlink(path)

    except OSError as error:
        logger.debug("Could not read link '%s': %s", path, error)
        return None


def extended_attributes(
    path: str,
    *,
    follow_symlinks: bool = False,
    capabilities: Capabilities = PLATFORM,
) -> tuple[str, ...]:
    """
    Return the names of the extended attributes of `path`.

    Raises:
        Unsupported: The platform has no extended attributes.
        OSError: The query failed.
    """
    if not capabilities.xattrs:
        raise Unsupported("extended attributes")
    return tuple(os.listxattr(path, follow_symlinks=follow_symlinks))


def physical_size(metadata: os.stat_result, capabilities: Capabilities = PLATFORM) -> int:
    """
    Return the bytes allocated on disk for an entry.

    Raises:
        Unsupported: The platform does not report allocated blocks.
    """
    if not capabilities.physical_size:
        raise Unsupported("physical size")
    return metadata.st_blocks * BLOCK_SIZE
