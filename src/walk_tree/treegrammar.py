from __future__ import annotations

import argparse
import dataclasses
import enum
import logging
from typing import Any
from typing import Callable
from typing import Iterable
from typing import NoReturn
from typing import Sequence

SWITCH_VALUES = ("true", "false")


class ValueSource(enum.Enum):
    """Where the value of a parameter came from."""

    COMMAND_LINE = "command-line"
    CONFIG_FILE = "config-file"
    DEFAULT = "default"


class GrammarError(ValueError):
    """
    A token sequence does not satisfy the grammar.

    Attributes:
        message: Human readable description of the violated constraint.
        identifier: The parameter at fault, when it is known.
    """

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier


@dataclasses.dataclass(frozen=True)
class Param:
    """
    Declaration of a single parameter.

    A param with no `flags` is positional. A `switch` param takes no value on
    the command line; it may be written `--flag=true` or `--flag=false`.
    """

    name: str
    flags: tuple[str, ...] = ()
    help: str = ""
    switch: bool = False
    convert: Callable[[str], Any] = str
    default: Any = None
    choices: tuple[str, ...] | None = None
    requires: str | None = None
    repeatable: bool = False
    metavar: str | None = None

    @property
    def long_flag(self) -> str:
        """Return the canonical long spelling, e.g. `no_git` -> `--no-git`."""
        return "--" + self.name.replace("_", "-")

    @property
    def is_positional(self) -> bool:
        """True if the param is given without a flag."""
        return not self.flags

    def describe(self) -> str:
        """Return the spelling used in error messages."""
        if self.is_positional:
            return f"<{self.name.upper()}>"
        return "/".join(self.flags)


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting on errors."""

    def error(self, message: str) -> NoReturn:
        raise GrammarError(message)


class _RecordRaw(argparse.Action):
    """Store the raw string values of a param, keeping first-seen order."""

    def __init__(self, *args: Any, param: Param, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.param = param

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: str | Sequence[Any] | None,
        option_string: str | None = None,
    ) -> None:
        if values is argparse.SUPPRESS:
            return

        if self.param.switch:
            raw = "false" if option_string and option_string.endswith("=false") else "true"
        else:
            raw = values if isinstance(values, str) else str(values)

        recorded: dict[str, list[str]] = namespace.raw
        if self.param.name not in recorded:
            recorded[self.param.name] = []
            namespace.order.append(self.param.name)

        if self.param.repeatable:
            recorded[self.param.name].append(raw)
        else:
            # Later occurrences override earlier ones
            recorded[self.param.name] = [raw]


@dataclasses.dataclass(frozen=True)
class Matches:
    """The result of parsing a token sequence against a Grammar."""

    grammar: Grammar
    explicit_source: ValueSource
    explicit_values: dict[str, Any]
    raw_values: dict[str, tuple[str, ...]]
    order: tuple[str, ...]

    def ids(self) -> tuple[str, ...]:
        """Return the identifiers given explicitly, in first-seen order."""
        return self.order

    def args_present(self) -> bool:
        """True if any parameter was given explicitly."""
        return bool(self.order)

    def raw(self, name: str) -> tuple[str, ...] | None:
        """Return the raw, unconverted tokens recorded for `name`."""
        return self.raw_values.get(name)

    def source(self, name: str) -> ValueSource:
        """Return where the value of `name` came from."""
        if name in self.explicit_values:
            return self.explicit_source
        return ValueSource.DEFAULT

    def value(self, name: str) -> Any:
        """Return the converted value of `name`, or its declared default."""
        if name in self.explicit_values:
            return self.explicit_values[name]
        return self.grammar.param(name).default

    def is_set(self, name: str) -> bool:
        """True if `name` was given explicitly with a value other than false."""
        if name not in self.explicit_values:
            return False
        value = self.explicit_values[name]
        return value is not False and value is not None

    def values(self) -> dict[str, Any]:
        """Return the value of every declared parameter."""
        return {param.name: self.value(param.name) for param in self.grammar.params}


class Grammar:
    """Declared parameters and the rules to parse tokens against them."""

    logger = logging.getLogger(__name__)

    def __init__(
        self,
        params: Iterable[Param],
        *,
        prog: str | None = None,
        description: str | None = None,
        version: str | None = None,
    ) -> None:
        """
        Declare a grammar.

        Args:
            params: The parameters, in the order they appear in help output.

        Keyword Args:
            prog: Program name used in usage and help output.
            description: Text shown above the help output.
            version: When given, `-V/--version` prints it and exits.
        """
        self._params = {param.name: param for param in params}
        self._prog = prog
        self._description = description
        self._version = version

        for param in self._params.values():
            if param.requires and param.requires not in self._params:
                raise ValueError(f"'{param.name}' requires undeclared '{param.requires}'")

    @property
    def params(self) -> tuple[Param, ...]:
        """Return every declared param."""
        return tuple(self._params.values())

    def param(self, name: str) -> Param:
        """Return the param declared as `name`. Raises KeyError if unknown."""
        return self._params[name]

    def is_switch(self, name: str) -> bool:
        """True if `name` is a presence/absence switch."""
        return self._params[name].switch

    def parse(
        self,
        tokens: Sequence[str],
        *,
        source: ValueSource = ValueSource.COMMAND_LINE,
        validate: bool = True,
    ) -> Matches:
        """
        Parse tokens into Matches.

        Args:
            tokens: The argument tokens, without the program name.

        Keyword Args:
            source: The source recorded for every explicitly given value.
            validate: Enforce `requires` dependencies. Types and unknown
                flags are always checked.

        Raises:
            GrammarError
        """
        namespace = argparse.Namespace(raw={}, order=[])
        self._build_parser().parse_args(self._normalize_switches(tokens), namespace)

        raw_values = {name: tuple(raw) for name, raw in namespace.raw.items()}
        matches = Matches(
            grammar=self,
            explicit_source=source,
            explicit_values={
                name: self._convert(self._params[name], raw) for name, raw in raw_values.items()
            },
            raw_values=raw_values,
            order=tuple(namespace.order),
        )
        self.logger.debug("Parsed %s from %s", matches.ids(), source.value)

        if validate:
            self.validate(matches)

        return matches

    def validate(self, matches: Matches) -> None:
        """
        Enforce the declared dependencies between params.

        Raises:
            GrammarError
        """
        for param in self._params.values():
            if not param.requires or not matches.is_set(param.name):
                continue

            if not matches.is_set(param.requires):
                required = self._params[param.requires]
                raise GrammarError(
                    f"the argument '{param.long_flag}' requires '{required.describe()}'",
                    identifier=param.name,
                )

    def format_help(self) -> str:
        """Return the help text."""
        return self._build_parser().format_help()

    def _normalize_switches(self, tokens: Sequence[str]) -> list[str]:
        """Lowercase the literal value of `--switch=TRUE` style tokens."""
        normalized: list[str] = []
        tokens_iter = iter(tokens)

        for token in tokens_iter:
            if token == "--":
                normalized.append(token)
                normalized.extend(tokens_iter)
                break

            flag, sep, value = token.partition("=")
            if sep and value.lower() in SWITCH_VALUES and self._is_switch_flag(flag):
                token = f"{flag}={value.lower()}"

            normalized.append(token)

        return normalized

    def _is_switch_flag(self, flag: str) -> bool:
        return any(param.switch and flag in param.flags for param in self._params.values())

    def _convert(self, param: Param, raw: tuple[str, ...]) -> Any:
        """Convert raw tokens into the value of `param`."""
        if param.switch:
            return raw[-1] == "true"

        try:
            if param.repeatable:
                return tuple(param.convert(value) for value in raw)
            return param.convert(raw[-1])

        except ValueError as error:
            raise GrammarError(
                f"invalid value '{raw[-1]}' for '{param.describe()}': {error}",
                identifier=param.name,
            ) from error

    def _build_parser(self) -> _Parser:
        """Build a fresh argparse parser for the declared params."""
        parser = _Parser(
            prog=self._prog,
            description=self._description,
            allow_abbrev=False,
        )

        if self._version:
            parser.add_argument("-V", "--version", action="version", version=self._version)

        for param in self._params.values():
            common: dict[str, Any] = {
                "action": _RecordRaw,
                "param": param,
                "default": argparse.SUPPRESS,
            }

            if param.is_positional:
                parser.add_argument(
                    param.name,
                    nargs="?",
                    help=param.help,
                    metavar=param.metavar or param.name.upper(),
                    **common,
                )

            elif param.switch:
                parser.add_argument(
                    *param.flags,
                    dest=param.name,
                    nargs=0,
                    help=param.help,
                    **common,
                )
                # `--flag=true` and `--flag=false` are matched as literal options
                literals = [
                    f"{flag}={value}"
                    for flag in param.flags
                    if flag.startswith("--")
                    for value in SWITCH_VALUES
                ]
                parser.add_argument(
                    *literals,
                    dest=param.name,
                    nargs=0,
                    help=argparse.SUPPRESS,
                    **common,
                )

            else:
                parser.add_argument(
                    *param.flags,
                    dest=param.name,
                    choices=param.choices,
                    help=param.help,
                    metavar=param.metavar,
                    **common,
                )

        return parser
