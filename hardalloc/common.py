"""Bit and alignment helpers, a small PRNG and shared allocator enumerations."""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass
from typing import MutableSequence, TypeVar

from .platform import MAX_RANDOM_LENGTH, get_page_size

__all__ = [
    "MAX_RANDOM_LENGTH",
    "WORD_SIZE",
    "UNMAP_ALL",
    "PATTERN_FILL_BYTE",
    "Option",
    "ReleaseToOS",
    "FillContentsMode",
    "MapFlags",
    "BlockInfo",
    "XorShift32",
    "is_power_of_two",
    "round_up",
    "round_up_slow",
    "round_down",
    "round_down_slow",
    "is_aligned",
    "is_aligned_slow",
    "get_most_significant_set_bit_index",
    "round_up_power_of_two",
    "get_least_significant_set_bit_index",
    "get_log2",
    "compute_percentage",
    "get_page_size_cached",
]

WORD_SIZE = 64
UNMAP_ALL = 1 << 0
PATTERN_FILL_BYTE = 0xAB

_U32_MASK = 0xFFFFFFFF

T = TypeVar("T")


class Option(enum.IntEnum):
    RELEASE_INTERVAL = 0
    MEMTAG_TUNING = 1
    THREAD_DISABLE_MEM_INIT = 2
    MAX_CACHE_ENTRIES_COUNT = 3
    MAX_CACHE_ENTRY_SIZE = 4
    MAX_TSDS_COUNT = 5


class ReleaseToOS(enum.IntEnum):
    NORMAL = 0
    FORCE = 1
    FORCE_ALL = 2


class FillContentsMode(enum.IntEnum):
    NO_FILL = 0
    ZERO_FILL = 1
    PATTERN_OR_ZERO_FILL = 2


class MapFlags(enum.IntFlag):
    NONE = 0
    ALLOW_NO_MEM = 1 << 0
    NO_ACCESS = 1 << 1
    RESIZABLE = 1 << 2
    MEMTAG = 1 << 3
    PRECOMMIT = 1 << 4


@dataclass
class BlockInfo:
    block_begin: int
    block_size: int
    region_begin: int
    region_end: int


class XorShift32:
    """32-bit xorshift pseudo-random generator."""

    def __init__(self, state: int) -> None:
        self.state = state & _U32_MASK

    def next_u32(self) -> int:
        """Advance the state and return it."""
        s = self.state
        s ^= (s << 13) & _U32_MASK
        s ^= s >> 17
        s ^= (s << 5) & _U32_MASK
        self.state = s
        return s

    def next_mod(self, n: int) -> int:
        """Return a value in [0, n)."""
        if n <= 0:
            raise ValueError("modulus must be positive")
        return self.next_u32() % n

    def shuffle(self, items: MutableSequence[T]) -> None:
        """Shuffle ``items`` in place."""
        for i in range(len(items) - 1, 0, -1):
            j = self.next_mod(i + 1)
            items[i], items[j] = items[j], items[i]


def is_power_of_two(x: int) -> bool:
    """True when x has at most one bit set (zero counts as a power of two)."""
    return (x & (x - 1)) == 0


def _require_power_of_two(value: int, what: str) -> None:
    if value <= 0 or not is_power_of_two(value):
        raise ValueError(f"{what} must be a power of two, got {value}")


def round_up(x: int, boundary: int) -> int:
    _require_power_of_two(boundary, "boundary")
    return (x + boundary - 1) & ~(boundary - 1)


def round_up_slow(x: int, boundary: int) -> int:
    return ((x + boundary - 1) // boundary) * boundary


def round_down(x: int, boundary: int) -> int:
    _require_power_of_two(boundary, "boundary")
    return x & ~(boundary - 1)


def round_down_slow(x: int, boundary: int) -> int:
    return (x // boundary) * boundary


def is_aligned(x: int, alignment: int) -> bool:
    _require_power_of_two(alignment, "alignment")
    return (x & (alignment - 1)) == 0


def is_aligned_slow(x: int, alignment: int) -> bool:
    return x % alignment == 0


def get_most_significant_set_bit_index(x: int) -> int:
    if x <= 0:
        raise ValueError("value must be positive")
    return x.bit_length() - 1


def round_up_power_of_two(size: int) -> int:
    if size <= 0:
        raise ValueError("size must be positive")
    if is_power_of_two(size):
        return size
    return 1 << (get_most_significant_set_bit_index(size) + 1)


def get_least_significant_set_bit_index(x: int) -> int:
    if x <= 0:
        raise ValueError("value must be positive")
    return (x & -x).bit_length() - 1


def get_log2(x: int) -> int:
    _require_power_of_two(x, "value")
    return get_least_significant_set_bit_index(x)


def compute_percentage(numerator: int, denominator: int) -> tuple[int, int]:
    """Return (integral, two-digit fractional) parts of numerator/denominator in percent."""
    digits = 100
    if denominator == 0:
        return 100, 0
    integral = numerator * digits // denominator
    fractional = (
        ((numerator * digits) % denominator) * digits + denominator // 2
    ) // denominator
    return integral, fractional


@functools.lru_cache(maxsize=None)
def get_page_size_cached() -> int:
    """Return the page size, querying the system only once."""
    size = get_page_size()
    if size == 0:
        raise RuntimeError("page size could not be determined")
    return size