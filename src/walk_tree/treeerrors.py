from __future__ import annotations


class WalkTreeError(Exception):
    """Base exception for walk-tree operations."""


class ArgumentParseError(WalkTreeError):
    """The command line could not be parsed against the grammar."""


class ConfigurationError(WalkTreeError):
    """The merged configuration is invalid or the config file is malformed."""


class PatternError(WalkTreeError):
    """The search pattern cannot be turned into a predicate."""


class RegexDisabledError(PatternError):
    """A regex predicate was requested while glob matching is enabled."""

    def __init__(self) -> None:
        super().__init__("Regex matching is disabled when '--glob' or '--iglob' is used")


class PatternNotProvidedError(PatternError):
    """A regex predicate was requested without a pattern."""

    def __init__(self) -> None:
        super().__init__("Expected a pattern to be provided with '--pattern'")


class MetadataError(WalkTreeError):
    """Metadata for a filesystem entry could not be retrieved."""

    def __init__(self, path: str, error: OSError) -> None:
        super().__init__(f"Could not read metadata for '{path}': {error}")
        self.path = path
        self.error = error


class IgnorePolicyError(WalkTreeError):
    """An ignore or override rule is malformed."""
