"""A small printf-style formatter and an appendable string buffer."""

from __future__ import annotations

import operator
from typing import Any, Iterator

from .platform import output_raw

__all__ = [
    "FormatError",
    "ScopedString",
    "format_string",
    "format_string_bounded",
    "printf",
    "POINTER_FORMAT_LENGTH",
]

POINTER_FORMAT_LENGTH = 12
"""Number of hex digits a pointer is padded to."""

_MAX_NUMBER_LENGTH = 30

_FORMATS_HELP = (
    "Supported formatString formats: %([0-9]*)?(z|ll)?{d,u,x,X}; %p; "
    "%[-]([0-9]*)?(\\.\\*)?s; %c\n"
)


class FormatError(ValueError):
    """Raised for a format string or argument list the formatter does not support."""


def _to_signed(value: Any, bits: int) -> int:
    v = operator.index(value) & ((1 << bits) - 1)
    if v >= 1 << (bits - 1):
        v -= 1 << bits
    return v


def _to_unsigned(value: Any, bits: int) -> int:
    return operator.index(value) & ((1 << bits) - 1)


def _number(
    absolute: int,
    base: int,
    min_length: int,
    pad_with_zero: bool,
    negative: bool,
    upper: bool,
) -> str:
    if min_length >= _MAX_NUMBER_LENGTH:
        raise FormatError(f"width {min_length} is too large")
    out: list[str] = []
    if negative and min_length:
        min_length -= 1
    if negative and pad_with_zero:
        out.append("-")
    digits: list[int] = []
    while True:
        digits.append(absolute % base)
        absolute //= base
        if absolute == 0:
            break
    if len(digits) < min_length:
        digits.extend([0] * (min_length - len(digits)))
    pos = len(digits) - 1
    while pos >= 0 and digits[pos] == 0:
        out.append("0" if (pad_with_zero or pos == 0) else " ")
        pos -= 1
    if negative and not pad_with_zero:
        out.append("-")
    alphabet = "0123456789ABCDEF" if upper else "0123456789abcdef"
    out.extend(alphabet[d] for d in reversed(digits[: pos + 1]))
    return "".join(out)


def _signed_decimal(value: int, min_length: int, pad_with_zero: bool) -> str:
    return _number(abs(value), 10, min_length, pad_with_zero, value < 0, False)


def _string(width: int, max_chars: int, value: Any) -> str:
    text = "<null>" if value is None else str(value)
    if max_chars >= 0:
        text = text[:max_chars]
    if width < -len(text):
        text = text + " " * (-width - len(text))
    return text


def _render(fmt: str, args: tuple[Any, ...]) -> str:
    values: Iterator[Any] = iter(args)

    def next_arg() -> Any:
        try:
            return next(values)
        except StopIteration:
            raise FormatError(f"missing argument for format {fmt!r}") from None

    def at(k: int) -> str:
        return fmt[k] if k < len(fmt) else ""

    def is_digit(c: str) -> bool:
        return c != "" and "0" <= c <= "9"

    out: list[str] = []
    i = 0
    while i < len(fmt):
        if fmt[i] != "%":
            out.append(fmt[i])
            i += 1
            continue
        i += 1
        left_justified = at(i) == "-"
        if left_justified:
            i += 1
        have_width = is_digit(at(i))
        pad_with_zero = at(i) == "0"
        width = 0
        while is_digit(at(i)):
            width = (width * 10 + int(at(i))) & 0xFF
            i += 1
        precision = -1
        if at(i) == "." and at(i + 1) == "*":
            i += 2
            precision = _to_signed(next_arg(), 32)
        have_z = at(i) == "z"
        if have_z:
            i += 1
        have_ll = not have_z and at(i) == "l" and at(i + 1) == "l"
        if have_ll:
            i += 2
        have_length = have_z or have_ll
        have_flags = have_width or have_length
        spec = at(i)
        if (precision >= 0 or left_justified) and spec != "s":
            raise FormatError("precision and left justification apply only to %s")

        if spec == "d":
            bits = 64 if have_length else 32
            out.append(_signed_decimal(_to_signed(next_arg(), bits), width, pad_with_zero))
        elif spec in ("u", "x", "X"):
            bits = 64 if have_length else 32
            out.append(
                _number(
                    _to_unsigned(next_arg(), bits),
                    10 if spec == "u" else 16,
                    width,
                    pad_with_zero,
                    False,
                    spec == "X",
                )
            )
        elif spec == "p":
            if have_flags:
                raise FormatError(_FORMATS_HELP)
            value = _to_unsigned(next_arg(), 64)
            out.append("0x" + _number(value, 16, POINTER_FORMAT_LENGTH, True, False, False))
        elif spec == "s":
            if have_length:
                raise FormatError(_FORMATS_HELP)
            if have_width and not left_justified:
                raise FormatError("only left-justified width is supported for %s")
            out.append(_string(-width if left_justified else width, precision, next_arg()))
        elif spec == "c":
            if have_flags:
                raise FormatError(_FORMATS_HELP)
            value = next_arg()
            if isinstance(value, str) and len(value) == 1:
                out.append(value)
            else:
                out.append(chr(operator.index(value) & 0xFF))
        elif spec == "l":
            i += 1
            sub = at(i)
            if sub == "d":
                out.append(_signed_decimal(_to_signed(next_arg(), 64), width, pad_with_zero))
            elif sub == "u":
                out.append(
                    _number(_to_unsigned(next_arg(), 64), 10, width, pad_with_zero, False, False)
                )
            else:
                raise FormatError("%l must be followed by d or u")
        elif spec == "%":
            if have_flags:
                raise FormatError(_FORMATS_HELP)
            out.append("%")
        else:
            raise FormatError(_FORMATS_HELP)
        i += 1
    return "".join(out)


def format_string(fmt: str, *args: Any) -> str:
    """Format ``args`` according to ``fmt`` and return the whole result."""
    return _render(fmt, args)


def format_string_bounded(buffer_length: int, fmt: str, *args: Any) -> tuple[str, int]:
    """Format into a buffer of ``buffer_length`` bytes including the terminator.

    Returns the text that fits and the length the full result would have.
    """
    if buffer_length <= 0:
        raise FormatError("buffer length must be positive")
    text = _render(fmt, args)
    return text[: buffer_length - 1], len(text)


class ScopedString:
    """A growable string that is appended to with format strings."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def append(self, fmt: str, *args: Any) -> None:
        """Append the formatted text."""
        self._parts.append(_render(fmt, args))

    def length(self) -> int:
        return len(self.data())

    def data(self) -> str:
        if len(self._parts) > 1:
            self._parts = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""

    def clear(self) -> None:
        self._parts = []

    def output(self) -> None:
        """Write the contents with the raw output function."""
        output_raw(self.data())

    def __str__(self) -> str:
        return self.data()


def printf(fmt: str, *args: Any) -> None:
    """Format and write the result with the raw output function."""
    output_raw(_render(fmt, args))