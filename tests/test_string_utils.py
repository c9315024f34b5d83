import pytest
from hypothesis import given, strategies as st

from hardalloc.string_utils import (
    POINTER_FORMAT_LENGTH,
    FormatError,
    ScopedString,
    format_string,
    format_string_bounded,
    printf,
)

INT32 = st.integers(min_value=-(2**31), max_value=2**31 - 1)


@given(INT32, st.integers(min_value=0, max_value=20))
def test_signed_width_matches_printf(value, width):
    assert format_string(f"%{width}d", value) == f"%{width}d" % value


@given(INT32, st.integers(min_value=1, max_value=20))
def test_signed_zero_pad_matches_printf(value, width):
    assert format_string(f"%0{width}d", value) == f"%0{width}d" % value


@given(st.integers(min_value=0, max_value=2**64 - 1))
def test_hex_with_z_matches_printf(value):
    assert format_string("%zx", value) == "%x" % value
    assert format_string("%llX", value) == "%X" % value
    assert format_string("%zu", value) == str(value)


def test_unsigned_without_length_is_32_bit():
    assert format_string("%u", -1) == str(2**32 - 1)
    assert format_string("%d", 2**32 + 5) == "5"


def test_l_modifiers_are_64_bit():
    assert format_string("%ld", -(2**40)) == str(-(2**40))
    assert format_string("%lu", 2**40) == str(2**40)


def test_strings():
    assert format_string("%.*s", 3, "abcdef") == "abcdef"[:3]
    assert format_string("%-10s|", "ab") == "%-10s|" % "ab"
    assert format_string("%s", None) == "<null>"
    assert format_string("%c%%", ord("A")) == "A%"


def test_bounded_truncates_and_reports_full_length():
    text, length = format_string_bounded(4, "%s", "abcdef")
    assert text == "abcdef"[:3]
    assert length == len("abcdef")


def test_bounded_rejects_empty_buffer():
    with pytest.raises(FormatError):
        format_string_bounded(0, "x")


@pytest.mark.parametrize(
    "fmt, args",
    [
        ("%q", (1,)),
        ("%5s", ("a",)),
        ("%", ()),
        ("%d", ()),
        ("%5p", (1,)),
        ("%-d", (1,)),
        ("%lx", (1,)),
        ("%zs", ("a",)),
        ("%40d", (1,)),
    ],
)
def test_unsupported_formats_raise(fmt, args):
    with pytest.raises(FormatError):
        format_string(fmt, *args)


def test_scoped_string_append_and_clear():
    s = ScopedString()
    s.append("%d-", 7)
    s.append("%s", "x")
    assert s.data() == format_string("%d-", 7) + format_string("%s", "x")
    assert s.length() == len(s.data())
    assert str(s) == s.data()
    s.clear()
    assert s.length() == 0


def test_output_and_printf_write_to_stderr(capsys):
    s = ScopedString()
    s.append("hello %d\n", 3)
    s.output()
    printf("%s!", "bye")
    err = capsys.readouterr().err
    assert err == s.data() + format_string("%s!", "bye")