from __future__ import annotations

import logging
import os
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from pathlib import Path

from platformdirs import user_config_dir

from .treeerrors import ConfigurationError

APP_NAME = "walk-tree"
CONFIG_SECTION = "walk-tree"
CONFIG_FILENAME = "config.ini"
HOME_CONFIG_FILENAME = ".walk-tree.ini"
CONFIG_PATH_ENV = "WALK_TREE_CONFIG_PATH"

logger = logging.getLogger(__name__)


def config_paths() -> list[Path]:
    """
    Return the candidate config file locations, most specific first.

    Order: `$WALK_TREE_CONFIG_PATH`, the per-user config directory, then
    `~/.walk-tree.ini`.
    """
    paths: list[Path] = []

    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        paths.append(Path(env_path))

    paths.append(Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME)
    paths.append(Path.home() / HOME_CONFIG_FILENAME)

    return paths


def read_config_to_string(path: str | os.PathLike[str] | None = None) -> str | None:
    """
    Return the content of the first readable config file, or None.

    Args:
        path: Read only this file instead of searching the default locations.

    Raises:
        ConfigurationError: The file exists but is not valid UTF-8.
    """
    candidates = [Path(path)] if path is not None else config_paths()

    for candidate in candidates:
        try:
            content = candidate.read_text(encoding="utf-8")

        except UnicodeDecodeError as error:
            raise ConfigurationError(f"Config file '{candidate}' is not UTF-8: {error}") from error

        except OSError as error:
            # Missing or unreadable files are skipped, never fatal
            logger.debug("Skipping config file '%s': %s", candidate, error)
            continue

        logger.debug("Loaded config from %s", candidate)
        return content

    return None


def tokenize(content: str, *, source: str = "<config>") -> list[str]:
    """
    Turn INI config content into command line tokens.

    Every key of the `[walk-tree]` section becomes `--key=value`. Keys with no
    value become a bare `--key`; multiline values give one token per line.

    Args:
        content: The text of the config file.

    Keyword Args:
        source: Name of the config used in error messages.

    Raises:
        ConfigurationError: The content is not valid INI.
    """
    parser = ConfigParser(interpolation=None, allow_no_value=True)

    try:
        parser.read_string(content, source=source)

    except ConfigParserError as error:
        raise ConfigurationError(f"Could not parse config: {error}") from error

    if not parser.has_section(CONFIG_SECTION):
        logger.debug("No [%s] section in %s", CONFIG_SECTION, source)
        return []

    tokens: list[str] = []
    for key, value in parser.items(CONFIG_SECTION):
        flag = "--" + key.strip().replace("_", "-")
        lines = [line.strip() for line in (value or "").splitlines() if line.strip()]

        if not lines:
            tokens.append(flag)
            continue

        tokens.extend(f"{flag}={line}" for line in lines)

    logger.debug("Tokenized config into %s", tokens)
    return tokens
