from __future__ import annotations

import dataclasses
import enum
import logging
import os

from .treefs import PLATFORM
from .treefs import Capabilities
from .treefs import Unsupported
from .treefs import physical_size

BIN_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")
SI_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")

logger = logging.getLogger(__name__)


class DiskUsage(str, enum.Enum):
    """Which size of a file to report."""

    LOGICAL = "logical"
    PHYSICAL = "physical"


class PrefixKind(str, enum.Enum):
    """Unit system used to scale sizes."""

    BIN = "bin"
    SI = "si"

    @property
    def base(self) -> int:
        return 1024 if self is PrefixKind.BIN else 1000

    @property
    def units(self) -> tuple[str, ...]:
        return BIN_UNITS if self is PrefixKind.BIN else SI_UNITS


@dataclasses.dataclass(frozen=True)
class FileSize:
    """A size in bytes and how it should be displayed."""

    bytes: int
    disk_usage: DiskUsage
    prefix_kind: PrefixKind = PrefixKind.BIN
    scale: int = 2

    @classmethod
    def logical(cls, metadata: os.stat_result, prefix_kind: PrefixKind, scale: int) -> FileSize:
        """The length reported by the filesystem."""
        return cls(metadata.st_size, DiskUsage.LOGICAL, prefix_kind, scale)

    @classmethod
    def physical(
        cls,
        metadata: os.stat_result,
        prefix_kind: PrefixKind,
        scale: int,
        capabilities: Capabilities = PLATFORM,
    ) -> FileSize | None:
        """The space allocated on disk, or None where the platform can't tell."""
        try:
            size = physical_size(metadata, capabilities)

        except Unsupported:
            logger.debug("Physical size is not available on this platform")
            return None

        return cls(size, DiskUsage.PHYSICAL, prefix_kind, scale)

    def __add__(self, other: FileSize) -> FileSize:
        if not isinstance(other, FileSize):
            return NotImplemented
        return dataclasses.replace(self, bytes=self.bytes + other.bytes)

    def scaled(self) -> tuple[float, str]:
        """Return the size divided down to its largest whole unit and that unit."""
        value = float(self.bytes)
        units = self.prefix_kind.units

        for unit in units[:-1]:
            if value < self.prefix_kind.base:
                return value, unit
            value /= self.prefix_kind.base

        return value, units[-1]

    def format(self, *, human: bool = True) -> str:
        """
        Return the display string of the size.

        Bytes are never shown with decimals, e.g. `12 B` or `1.21 KiB`. With
        `human` False the raw byte count is returned.
        """
        if not human:
            return str(self.bytes)

        value, unit = self.scaled()
        if unit == "B":
            return f"{int(value)} {unit}"

        return f"{value:.{self.scale}f} {unit}"

    def __str__(self) -> str:
        return self.format()
