"""Parser for option strings of the form ``name=value`` separated by spaces, commas or colons."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable

from .report import report_error, report_invalid_flag
from .string_utils import printf

__all__ = [
    "FlagType",
    "UnknownFlagsRegistry",
    "FlagParser",
    "report_unrecognized_flags",
]

_NUL = "\0"
_SEPARATORS = frozenset(" ,:\n\t\r")
_STRTOL_SPACE = frozenset(" \t\n\v\f\r")
_INT_MIN = -(1 << 31)
_INT_MAX = (1 << 31) - 1


def _is_separator(c: str) -> bool:
    return c in _SEPARATORS


def _is_separator_or_null(c: str) -> bool:
    return c == _NUL or c in _SEPARATORS


def _char_at(text: str, index: int) -> str:
    return text[index] if index < len(text) else _NUL


class FlagType(enum.Enum):
    BOOL = "bool"
    INT = "int"


class UnknownFlagsRegistry:
    """Collects names of unrecognised flags so they can be reported later."""

    MAX_UNKNOWN_FLAGS = 16

    def __init__(self) -> None:
        self._names: list[str] = []

    def add(self, name: str) -> None:
        """Record an unknown flag name; too many of them is a fatal error."""
        if len(self._names) >= self.MAX_UNKNOWN_FLAGS:
            report_error("too many unrecognized flags")
        self._names.append(name)

    def report(self) -> None:
        """Print a warning listing the collected names, then forget them."""
        if not self._names:
            return
        printf("Scudo WARNING: found %d unrecognized flag(s):\n", len(self._names))
        for name in self._names:
            printf("    %s\n", name)
        self._names.clear()


_unknown_flags = UnknownFlagsRegistry()


def report_unrecognized_flags() -> None:
    """Report unknown flags seen by parsers using the shared registry."""
    _unknown_flags.report()


def _parse_bool(value: str) -> bool | None:
    if value.startswith(("0", "no", "false")):
        return False
    if value.startswith(("1", "yes", "true")):
        return True
    return None


def _parse_long(value: str) -> tuple[int, int]:
    """Parse a leading decimal integer; return it and the index where parsing stopped."""
    i = 0
    while i < len(value) and value[i] in _STRTOL_SPACE:
        i += 1
    negative = False
    if i < len(value) and value[i] in "+-":
        negative = value[i] == "-"
        i += 1
    start = i
    while i < len(value) and "0" <= value[i] <= "9":
        i += 1
    if i == start:
        return 0, 0
    number = int(value[start:i])
    return (-number if negative else number), i


@dataclass(frozen=True)
class _Flag:
    name: str
    description: str
    flag_type: FlagType
    setter: Callable[[Any], None]


class FlagParser:
    """Parses option strings and hands each value to the setter of its flag."""

    MAX_FLAGS = 20

    def __init__(self, unknown_flags: UnknownFlagsRegistry | None = None) -> None:
        self._flags: list[_Flag] = []
        self._unknown = unknown_flags if unknown_flags is not None else _unknown_flags

    def register_flag(
        self,
        name: str,
        description: str,
        flag_type: FlagType,
        setter: Callable[[Any], None],
    ) -> None:
        """Register a flag; ``setter`` receives its parsed value."""
        if len(self._flags) >= self.MAX_FLAGS:
            report_error("too many flags registered")
        self._flags.append(_Flag(name, description, flag_type, setter))

    def parse_string(self, text: str | None) -> None:
        """Parse every ``name=value`` pair in ``text``; None is ignored."""
        if text is None:
            return
        pos = 0
        while True:
            while _is_separator(_char_at(text, pos)):
                pos += 1
            if _char_at(text, pos) == _NUL:
                break
            pos = self._parse_flag(text, pos)

    def parse_string_pair(self, name: str, value: str) -> None:
        """Set one flag from a separate name and value."""
        self._run_handler(name, value, value)

    def print_flag_descriptions(self) -> None:
        """Print every registered flag with its description."""
        printf("Available flags for Scudo:\n")
        for flag in self._flags:
            printf("\t%s\n\t\t- %s\n", flag.name, flag.description)

    def _parse_flag(self, text: str, pos: int) -> int:
        name_start = pos
        while _char_at(text, pos) != "=" and not _is_separator_or_null(_char_at(text, pos)):
            pos += 1
        if _char_at(text, pos) != "=":
            report_error("expected '='")
        name = text[name_start:pos]
        pos += 1
        value_start = pos
        quote = _char_at(text, pos)
        if quote in ("'", '"'):
            pos += 1
            while _char_at(text, pos) not in (_NUL, quote):
                pos += 1
            if _char_at(text, pos) == _NUL:
                report_error("unterminated string")
            value = text[value_start + 1 :]
            shown = text[value_start + 1 : pos]
            pos += 1
        else:
            while not _is_separator_or_null(_char_at(text, pos)):
                pos += 1
            value = text[value_start:]
            shown = text[value_start:pos]
        self._run_handler(name, value, shown)
        return pos

    def _run_handler(self, name: str, value: str, shown: str) -> None:
        for flag in self._flags:
            if flag.name != name:
                continue
            if flag.flag_type is FlagType.BOOL:
                parsed = _parse_bool(value)
                if parsed is None:
                    report_invalid_flag("bool", shown)
                flag.setter(parsed)
            else:
                number, end = _parse_long(value)
                terminator = _char_at(value, end)
                if not _INT_MIN <= number <= _INT_MAX or (
                    terminator not in ("'", '"') and not _is_separator_or_null(terminator)
                ):
                    report_invalid_flag("int", shown)
                flag.setter(number)
            return
        self._unknown.add(name)