"""Bookkeeping for returning free pages to the operating system."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol

from .common import (
    WORD_SIZE,
    get_least_significant_set_bit_index,
    get_log2,
    get_most_significant_set_bit_index,
    get_page_size_cached,
    is_aligned,
    round_up,
    round_up_power_of_two,
)
from .platform import HybridMutex

__all__ = [
    "CACHE_LINE_SIZE",
    "STATIC_BUFFER_COUNT",
    "STATIC_BUFFER_NUM_ELEMENTS",
    "RegionReleaseRecorder",
    "ReleaseRecorder",
    "FragmentationRecorder",
    "Buffer",
    "BufferPool",
    "RegionPageMap",
]

CACHE_LINE_SIZE = 64
STATIC_BUFFER_COUNT = 2
STATIC_BUFFER_NUM_ELEMENTS = 512

_WORD_BYTES = WORD_SIZE // 8
_WORD_MASK = (1 << WORD_SIZE) - 1


class _PageReleaser(Protocol):
    def release_pages_to_os(self, from_: int, size: int) -> None: ...


class RegionReleaseRecorder:
    """Releases page ranges of a region through its memory map and counts them."""

    def __init__(self, region_mem_map: _PageReleaser, base: int, offset: int = 0) -> None:
        self.region_mem_map = region_mem_map
        self.base = base
        self.offset = offset
        self.released_ranges_count = 0
        self.released_bytes = 0

    def release_page_range_to_os(self, from_: int, to: int) -> None:
        """Release [from_, to), offsets from ``base + offset``."""
        size = to - from_
        self.region_mem_map.release_pages_to_os(self.base + self.offset + from_, size)
        self.released_ranges_count += 1
        self.released_bytes += size


class ReleaseRecorder:
    """Releases page ranges through a callable and counts them.

    ``releaser`` is called as ``releaser(base, offset, size)``; without one the
    ranges are only counted.
    """

    def __init__(
        self,
        base: int,
        offset: int = 0,
        releaser: Callable[[int, int, int], None] | None = None,
    ) -> None:
        self.base = base
        self.offset = offset
        self.releaser = releaser
        self.released_ranges_count = 0
        self.released_bytes = 0

    def release_page_range_to_os(self, from_: int, to: int) -> None:
        """Release [from_, to), offsets from ``base + offset``."""
        size = to - from_
        if self.releaser is not None:
            self.releaser(self.base, from_ + self.offset, size)
        self.released_ranges_count += 1
        self.released_bytes += size


class FragmentationRecorder:
    """Counts the pages that could be released, without releasing them."""

    def __init__(self, page_size: int | None = None) -> None:
        self.page_size = page_size if page_size is not None else get_page_size_cached()
        self.released_pages_count = 0

    def release_page_range_to_os(self, from_: int, to: int) -> None:
        size = to - from_
        if size % self.page_size:
            raise ValueError(f"range size {size} is not a multiple of the page size")
        self.released_pages_count += size // self.page_size


@dataclass
class Buffer:
    """A zeroed array of words handed out by a :class:`BufferPool`."""

    data: list[int] = field(default_factory=list)
    buffer_index: int = -1


class BufferPool:
    """A fixed number of reusable word buffers; larger or extra requests get fresh ones."""

    def __init__(
        self,
        static_buffer_count: int = STATIC_BUFFER_COUNT,
        static_buffer_num_elements: int = STATIC_BUFFER_NUM_ELEMENTS,
    ) -> None:
        if not 0 <= static_buffer_count < WORD_SIZE:
            raise ValueError(f"static buffer count must be below {WORD_SIZE}")
        if not is_aligned(static_buffer_num_elements * _WORD_BYTES, CACHE_LINE_SIZE):
            raise ValueError("static buffers must span whole cache lines")
        self.static_buffer_count = static_buffer_count
        self.static_buffer_num_elements = static_buffer_num_elements
        self._mutex = HybridMutex()
        # A set bit marks a free static buffer; the top bit is never cleared.
        self._mask = _WORD_MASK
        self._raw = [[0] * static_buffer_num_elements for _ in range(static_buffer_count)]

    def get_buffer(self, num_elements: int) -> Buffer:
        """Return a zeroed buffer of at least ``num_elements`` words."""
        if num_elements > self.static_buffer_num_elements:
            return self._get_dynamic_buffer(num_elements)
        with self._mutex:
            index = get_least_significant_set_bit_index(self._mask)
            if index < self.static_buffer_count:
                self._mask ^= 1 << index
        if index >= self.static_buffer_count:
            return self._get_dynamic_buffer(num_elements)
        data = self._raw[index]
        data[:] = [0] * self.static_buffer_num_elements
        return Buffer(data, index)

    def release_buffer(self, buffer: Buffer) -> None:
        """Give a buffer back to the pool."""
        self._check_buffer(buffer)
        if buffer.buffer_index != self.static_buffer_count:
            bit = 1 << buffer.buffer_index
            with self._mutex:
                if self._mask & bit:
                    raise ValueError(f"static buffer {buffer.buffer_index} is not in use")
                self._mask |= bit
        buffer.data = []

    def is_static_buffer(self, buffer: Buffer) -> bool:
        """Return whether the buffer is one of the pool's reusable buffers."""
        self._check_buffer(buffer)
        return buffer.buffer_index != self.static_buffer_count

    def _check_buffer(self, buffer: Buffer) -> None:
        if not 0 <= buffer.buffer_index <= self.static_buffer_count:
            raise ValueError(f"buffer index {buffer.buffer_index} is not from this pool")

    def _get_dynamic_buffer(self, num_elements: int) -> Buffer:
        mapped_size = round_up(num_elements * _WORD_BYTES, get_page_size_cached())
        return Buffer([0] * (mapped_size // _WORD_BYTES), self.static_buffer_count)


_BUFFERS = BufferPool()


class RegionPageMap:
    """Packed per-page counters for one or more regions.

    Each counter takes the smallest power-of-two number of bits that holds
    ``max_value``. A counter at its all-ones value means "all counted".
    """

    def __init__(
        self,
        number_of_regions: int | None = None,
        counters_per_region: int | None = None,
        max_value: int | None = None,
        *,
        pool: BufferPool | None = None,
    ) -> None:
        self._pool = pool if pool is not None else _BUFFERS
        self._regions = 0
        self._num_counters = 0
        self._counter_size_bits_log = 0
        self._counter_mask = 0
        self._packing_ratio_log = 0
        self._bit_offset_mask = 0
        self._size_per_region = 0
        self._buffer_num_elements = 0
        self._buffer: Buffer | None = None
        if number_of_regions is not None:
            if counters_per_region is None or max_value is None:
                raise ValueError("counters_per_region and max_value are required")
            self.reset(number_of_regions, counters_per_region, max_value)

    def __enter__(self) -> RegionPageMap:
        return self

    def __exit__(self, *args) -> None:
        self.release()

    def reset(self, number_of_regions: int, counters_per_region: int, max_value: int) -> None:
        """Lay out counters for the given shape and take a zeroed buffer."""
        if number_of_regions <= 0 or counters_per_region <= 0 or max_value <= 0:
            raise ValueError("regions, counters and max value must be positive")
        counter_size_bits = round_up_power_of_two(
            get_most_significant_set_bit_index(max_value) + 1
        )
        if counter_size_bits > WORD_SIZE:
            raise ValueError(f"max value {max_value} does not fit in a word")
        self.release()
        self._regions = number_of_regions
        self._num_counters = counters_per_region
        self._counter_size_bits_log = get_log2(counter_size_bits)
        self._counter_mask = _WORD_MASK >> (WORD_SIZE - counter_size_bits)
        packing_ratio = WORD_SIZE >> self._counter_size_bits_log
        self._packing_ratio_log = get_log2(packing_ratio)
        self._bit_offset_mask = packing_ratio - 1
        self._size_per_region = (
            round_up(counters_per_region, 1 << self._packing_ratio_log)
            >> self._packing_ratio_log
        )
        self._buffer_num_elements = self._size_per_region * number_of_regions
        self._buffer = self._pool.get_buffer(self._buffer_num_elements)

    def release(self) -> None:
        """Return the buffer to its pool."""
        if self._buffer is not None:
            self._pool.release_buffer(self._buffer)
            self._buffer = None

    def is_allocated(self) -> bool:
        return self._buffer is not None

    @property
    def count(self) -> int:
        """Number of counters per region."""
        return self._num_counters

    @property
    def counter_mask(self) -> int:
        """The all-ones value of a counter."""
        return self._counter_mask

    @property
    def buffer_num_elements(self) -> int:
        return self._buffer_num_elements

    def _locate(self, region: int, index: int) -> tuple[list[int], int, int]:
        if self._buffer is None:
            raise RuntimeError("page map has no buffer")
        if not 0 <= region < self._regions:
            raise IndexError(f"region {region} out of range")
        if not 0 <= index < self._num_counters:
            raise IndexError(f"counter {index} out of range")
        word = region * self._size_per_region + (index >> self._packing_ratio_log)
        bit_offset = (index & self._bit_offset_mask) << self._counter_size_bits_log
        return self._buffer.data, word, bit_offset

    def get(self, region: int, index: int) -> int:
        data, word, bit_offset = self._locate(region, index)
        return (data[word] >> bit_offset) & self._counter_mask

    def inc(self, region: int, index: int) -> None:
        self.inc_n(region, index, 1)

    def inc_n(self, region: int, index: int, n: int) -> None:
        """Add ``n`` to a counter; it must stay below the all-counted value."""
        if not 0 < n <= self._counter_mask:
            raise ValueError(f"increment {n} out of range")
        data, word, bit_offset = self._locate(region, index)
        current = (data[word] >> bit_offset) & self._counter_mask
        if current == self._counter_mask or current > self._counter_mask - n:
            raise ValueError(f"counter {index} of region {region} would overflow")
        data[word] += n << bit_offset

    def inc_range(self, region: int, from_: int, to: int) -> None:
        """Increment counters from ``from_`` to ``to`` inclusive, clipped to the count."""
        if from_ > to:
            raise ValueError("range start is after its end")
        for index in range(from_, min(to + 1, self._num_counters)):
            self.inc(region, index)

    def set_as_all_counted(self, region: int, index: int) -> None:
        data, word, bit_offset = self._locate(region, index)
        data[word] |= self._counter_mask << bit_offset

    def set_as_all_counted_range(self, region: int, from_: int, to: int) -> None:
        """Mark counters from ``from_`` to ``to`` inclusive, clipped to the count."""
        if from_ > to:
            raise ValueError("range start is after its end")
        for index in range(from_, min(to + 1, self._num_counters)):
            self.set_as_all_counted(region, index)

    def update_as_all_counted_if(self, region: int, index: int, max_count: int) -> bool:
        """Mark the counter all counted if it reached ``max_count``; return whether it is."""
        count = self.get(region, index)
        if count == self._counter_mask:
            return True
        if count == max_count:
            self.set_as_all_counted(region, index)
            return True
        return False

    def is_all_counted(self, region: int, index: int) -> bool:
        return self.get(region, index) == self._counter_mask