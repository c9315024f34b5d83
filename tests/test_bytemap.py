import pytest
from hypothesis import given
from hypothesis import strategies as st

from hardalloc.bytemap import FlatByteMap


def test_new_map_is_zero():
    byte_map = FlatByteMap(8)
    byte_map.init()
    assert len(byte_map) == 8
    assert all(byte_map[i] == 0 for i in range(8))


@given(st.integers(min_value=0, max_value=63), st.integers(min_value=1, max_value=255))
def test_set_then_get(index, value):
    byte_map = FlatByteMap(64)
    byte_map.set(index, value)
    assert byte_map[index] == value


def test_set_twice_rejected():
    byte_map = FlatByteMap(4)
    byte_map.set(2, 9)
    with pytest.raises(ValueError):
        byte_map.set(2, 3)


def test_out_of_range_index():
    byte_map = FlatByteMap(4)
    with pytest.raises(IndexError):
        byte_map[4]
    with pytest.raises(IndexError):
        byte_map[-1]
    with pytest.raises(IndexError):
        byte_map.set(10, 1)


def test_value_must_fit_in_byte():
    byte_map = FlatByteMap(4)
    with pytest.raises(ValueError):
        byte_map.set(0, 256)


def test_unmap_clears_and_allows_reset():
    byte_map = FlatByteMap(4)
    byte_map.set(0, 5)
    with pytest.raises(ValueError):
        byte_map.init()
    byte_map.unmap_test_only()
    byte_map.init()
    assert byte_map[0] == 0
    byte_map.set(0, 7)
    assert byte_map[0] == 7


def test_enable_disable_keep_contents():
    byte_map = FlatByteMap(2)
    byte_map.set(1, 4)
    byte_map.disable()
    byte_map.enable()
    assert byte_map[1] == 4


def test_empty_map_init_and_negative_size():
    empty = FlatByteMap(0)
    empty.init()
    assert len(empty) == 0
    with pytest.raises(ValueError):
        FlatByteMap(-1)