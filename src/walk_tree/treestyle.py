from __future__ import annotations

import dataclasses
import functools
import logging
import os
import stat
from typing import Mapping

LS_COLORS_ENV = "LS_COLORS"

# Used when LS_COLORS is unset; the common GNU dircolors defaults.
DEFAULT_LS_COLORS = (
    "di=01;34:ln=01;36:or=40;31;01:pi=40;33:so=01;35:bd=40;33;01:cd=40;33;01"
    ":su=37;41:sg=30;43:tw=30;42:ow=34;42:st=37;44:ex=01;32"
    ":*.tar=01;31:*.tgz=01;31:*.gz=01;31:*.zip=01;31:*.xz=01;31:*.bz2=01;31"
    ":*.jpg=01;35:*.jpeg=01;35:*.png=01;35:*.gif=01;35:*.svg=01;35"
    ":*.mp3=00;36:*.flac=00;36:*.wav=00;36"
)

DIRECTORY_ICON = ""
SYMLINK_ICON = ""
FILE_ICON = ""

NAME_ICONS = {
    ".gitignore": "",
    ".gitattributes": "",
    "dockerfile": "",
    "license": "",
    "makefile": "",
    "cargo.lock": "",
}

EXTENSION_ICONS = {
    "py": "",
    "pyc": "",
    "rs": "",
    "go": "",
    "c": "",
    "h": "",
    "cpp": "",
    "js": "",
    "ts": "",
    "json": "",
    "toml": "",
    "yaml": "",
    "yml": "",
    "ini": "",
    "md": "",
    "txt": "",
    "sh": "",
    "lock": "",
    "html": "",
    "css": "",
    "png": "",
    "jpg": "",
    "zip": "",
    "gz": "",
}

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Style:
    """ANSI SGR codes for an entry. An empty Style paints nothing."""

    codes: str = ""

    @property
    def is_plain(self) -> bool:
        return not self.codes

    def paint(self, text: str) -> str:
        """Wrap `text` in the escape sequences of this Style."""
        if self.is_plain:
            return text
        return f"\x1b[{self.codes}m{text}\x1b[0m"


class LsColors:
    """A parsed LS_COLORS table."""

    def __init__(self, spec: str) -> None:
        self._indicators: dict[str, Style] = {}
        self._suffixes: dict[str, Style] = {}

        for entry in spec.split(":"):
            key, sep, codes = entry.partition("=")
            if not sep or not key:
                continue

            if key.startswith("*"):
                self._suffixes[key[1:].lower()] = Style(codes)
            else:
                self._indicators[key] = Style(codes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> LsColors:
        """Build the table from `$LS_COLORS`, falling back to the defaults."""
        environ = os.environ if environ is None else environ
        return cls(environ.get(LS_COLORS_ENV) or DEFAULT_LS_COLORS)

    def style_for_path(self, path: str, metadata: os.stat_result | None = None) -> Style | None:
        """
        Return the Style for `path`, or None if the table has no matching rule.

        Args:
            path: The path of the entry. Symlinks are detected from the path
                itself so that followed metadata still styles as a link.
            metadata: Stat metadata of the entry. Without it only the name is
                matched.
        """
        if os.path.islink(path):
            indicator = "ln" if os.path.exists(path) else "or"
            return self._indicators.get(indicator) or self._indicators.get("ln")

        if metadata is not None:
            indicator = self._indicator_for_mode(metadata.st_mode)
            if indicator:
                return self._indicators.get(indicator) or self._fallback_indicator(indicator)

        return self._style_for_name(os.path.basename(path)) or self._indicators.get("fi")

    def _indicator_for_mode(self, mode: int) -> str | None:
        """Return the LS_COLORS indicator of a non-regular mode, or a special file bit."""
        if stat.S_ISDIR(mode):
            sticky = mode & stat.S_ISVTX
            other_writable = mode & stat.S_IWOTH
            if sticky and other_writable:
                return "tw"
            if other_writable:
                return "ow"
            if sticky:
                return "st"
            return "di"

        for predicate, indicator in (
            (stat.S_ISFIFO, "pi"),
            (stat.S_ISSOCK, "so"),
            (stat.S_ISBLK, "bd"),
            (stat.S_ISCHR, "cd"),
        ):
            if predicate(mode):
                return indicator

        if mode & stat.S_ISUID and "su" in self._indicators:
            return "su"
        if mode & stat.S_ISGID and "sg" in self._indicators:
            return "sg"
        if mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH):
            return "ex"

        return None

    def _fallback_indicator(self, indicator: str) -> Style | None:
        # Special directory kinds fall back to the plain directory style
        if indicator in ("tw", "ow", "st"):
            return self._indicators.get("di")
        return None

    def _style_for_name(self, name: str) -> Style | None:
        """Return the Style of the longest matching suffix rule."""
        lowered = name.lower()
        matches = [suffix for suffix in self._suffixes if lowered.endswith(suffix)]
        if not matches:
            return None
        return self._suffixes[max(matches, key=len)]


@functools.lru_cache(maxsize=None)
def get_ls_colors() -> LsColors:
    """Return the process wide LS_COLORS table. Read-only once built."""
    ls_colors = LsColors.from_env()
    logger.debug("Loaded LS_COLORS table")
    return ls_colors


def compute_icon(
    path: str,
    symlink_target: str | None = None,
    *,
    is_dir: bool = False,
    style: Style | None = None,
) -> str:
    """
    Return the icon for an entry, painted with `style` when one is given.

    Symlinks take the icon of their target's name when it has one.
    """
    icon = _icon_for_name(os.path.basename(symlink_target)) if symlink_target else None

    if icon is None:
        if symlink_target:
            icon = SYMLINK_ICON
        elif is_dir:
            icon = DIRECTORY_ICON
        else:
            icon = _icon_for_name(os.path.basename(path)) or FILE_ICON

    return style.paint(icon) if style is not None else icon


def _icon_for_name(name: str) -> str | None:
    lowered = name.lower()
    if lowered in NAME_ICONS:
        return NAME_ICONS[lowered]

    _, dot, extension = lowered.rpartition(".")
    if not dot:
        return None
    return EXTENSION_ICONS.get(extension)
