import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from hardalloc.allocator_common import TransferBatch
from hardalloc.page_release import (
    FreePagesRangeTracker,
    PageReleaseContext,
    release_free_memory_to_os,
)
from hardalloc.release import BufferPool, FragmentationRecorder, ReleaseRecorder

PS = 4096


class _ListRecorder:
    def __init__(self):
        self.ranges = []

    def release_page_range_to_os(self, from_, to):
        self.ranges.append((from_, to))


def _batches(ptrs, size=4096):
    batch = TransferBatch(size)
    batch.set_from_array(ptrs)
    return [batch]


def _ctx(block_size, regions, release_size, offset=0):
    return PageReleaseContext(
        block_size, regions, release_size, offset, page_size=PS, pool=BufferPool()
    )


def _never(_):
    return False


def test_tracker_merges_consecutive_pages():
    rec = _ListRecorder()
    tracker = FreePagesRangeTracker(rec, PS)
    for released in (True, True, False, True):
        tracker.process_next_page(released)
    tracker.finish()
    assert rec.ranges == [(0, 2 * PS), (3 * PS, 4 * PS)]


def test_tracker_skip_closes_range():
    rec = _ListRecorder()
    tracker = FreePagesRangeTracker(rec, PS)
    tracker.process_next_page(True)
    tracker.skip_pages(3)
    tracker.process_next_page(True)
    tracker.finish()
    assert rec.ranges == [(0, PS), (4 * PS, 5 * PS)]


def test_tracker_rejects_non_power_of_two_page():
    with pytest.raises(ValueError):
        FreePagesRangeTracker(_ListRecorder(), 3000)


@pytest.mark.parametrize(
    "block_size, expected_max, same",
    [
        (16, PS // 16, True),
        (48, PS // 48 + 1, True),
        (112, PS // 112 + 2, False),
        (2 * PS, 1, True),
        (PS + 1000, 2, False),
    ],
)
def test_context_block_count_classification(block_size, expected_max, same):
    ctx = _ctx(block_size, 1, 4 * PS)
    assert ctx.full_pages_block_count_max == expected_max
    assert ctx.same_block_count_per_page is same


def test_context_rejects_offset_with_several_regions():
    with pytest.raises(ValueError):
        _ctx(16, 2, 4 * PS, PS)


def test_page_index_and_release_offset():
    ctx = _ctx(16, 1, 2 * PS, 2 * PS)
    assert ctx.get_page_index(2 * PS) == 0
    assert ctx.get_page_index(3 * PS + 5) == 1
    assert ctx.get_release_offset() == 2 * PS
    assert ctx.pages_count == 2


def test_page_map_allocated_lazily():
    ctx = _ctx(16, 1, 4 * PS)
    assert not ctx.has_block_marked()
    assert ctx.mark_free_blocks_in_region([], lambda p: p, 0, 0, 4 * PS, True)
    assert ctx.has_block_marked()


def test_fully_free_region_is_released():
    region = 4 * PS
    ctx = _ctx(16, 1, region)
    ctx.mark_free_blocks_in_region(
        _batches(range(0, region, 16)), lambda p: p, 0, 0, region, True
    )
    rec = ReleaseRecorder(0)
    release_free_memory_to_os(ctx, rec, _never)
    assert rec.released_bytes == region
    assert rec.released_ranges_count == 1


def test_page_with_allocated_block_is_kept():
    region = 4 * PS
    allocated = 2 * PS + 32
    ctx = _ctx(16, 1, region)
    free = [p for p in range(0, region, 16) if p != allocated]
    ctx.mark_free_blocks_in_region(_batches(free), lambda p: p, 0, 0, region, True)
    rec = _ListRecorder()
    release_free_memory_to_os(ctx, rec, _never)
    assert rec.ranges == [(0, 2 * PS), (3 * PS, 4 * PS)]


def test_decompact_and_base_are_applied():
    base = 0x100000
    region = 2 * PS
    ctx = _ctx(16, 1, region)
    compact = list(range(region // 16))
    ctx.mark_free_blocks_in_region(
        _batches(compact), lambda c: base + c * 16, base, 0, region, True
    )
    rec = FragmentationRecorder(PS)
    release_free_memory_to_os(ctx, rec, _never)
    assert rec.released_pages_count == 2


def test_slow_path_releases_free_region_with_straddling_blocks():
    block = 112
    region = block * 73
    ctx = _ctx(block, 1, region)
    assert not ctx.same_block_count_per_page
    ctx.mark_free_blocks_in_region(
        _batches(range(0, region, block)), lambda p: p, 0, 0, region, True
    )
    rec = ReleaseRecorder(0)
    release_free_memory_to_os(ctx, rec, _never)
    assert rec.released_bytes == ctx.pages_count * PS


def test_slow_path_keeps_pages_touched_by_allocated_block():
    block = 112
    region = block * 73
    ctx = _ctx(block, 1, region)
    # Block 36 straddles the boundary of pages 0 and 1.
    free = [p for p in range(0, region, block) if p != 36 * block]
    ctx.mark_free_blocks_in_region(_batches(free), lambda p: p, 0, 0, region, True)
    rec = ReleaseRecorder(0)
    release_free_memory_to_os(ctx, rec, _never)
    assert rec.released_bytes == 0


def test_skip_region_offsets_following_ranges():
    region = 2 * PS
    ctx = _ctx(16, 2, region)
    for index in range(2):
        ctx.mark_free_blocks_in_region(
            _batches(range(0, region, 16)), lambda p: p, 0, index, region, True
        )
    rec = _ListRecorder()
    release_free_memory_to_os(ctx, rec, lambda r: r == 0)
    assert rec.ranges == [(region, 2 * region)]


def test_mark_range_whole_region():
    region = 4 * PS
    ctx = _ctx(16, 1, region)
    assert ctx.mark_range_as_all_counted(0, region, 0, 0, region)
    rec = ReleaseRecorder(0)
    release_free_memory_to_os(ctx, rec, _never)
    assert rec.released_bytes == region


def test_mark_range_with_release_offset():
    base = 0x200000
    region = 4 * PS
    ctx = _ctx(16, 1, 2 * PS, 2 * PS)
    assert ctx.mark_range_as_all_counted(base + 2 * PS, base + region, base, 0, region)
    calls = []
    rec = ReleaseRecorder(
        base, ctx.get_release_offset(), lambda b, off, size: calls.append((b, off, size))
    )
    release_free_memory_to_os(ctx, rec, _never)
    assert calls == [(base, 2 * PS, 2 * PS)]


def test_mark_range_rejects_unaligned_start():
    ctx = _ctx(16, 1, 4 * PS)
    with pytest.raises(ValueError):
        ctx.mark_range_as_all_counted(8, 4 * PS, 0, 0, 4 * PS)


def test_mark_range_rejects_empty_range():
    ctx = _ctx(16, 1, 4 * PS)
    with pytest.raises(ValueError):
        ctx.mark_range_as_all_counted(PS, PS, 0, 0, 4 * PS)


def test_mark_free_blocks_rejects_block_outside_region():
    ctx = _ctx(16, 1, 2 * PS)
    with pytest.raises(ValueError):
        ctx.mark_free_blocks_in_region(
            _batches([2 * PS]), lambda p: p, 0, 0, 2 * PS, False
        )


@settings(max_examples=50, deadline=None)
@given(st.sets(st.integers(0, 4 * PS // 16 - 1), max_size=20))
def test_released_pages_are_exactly_the_free_ones(allocated):
    region = 4 * PS
    ctx = _ctx(16, 1, region)
    free = [i * 16 for i in range(region // 16) if i not in allocated]
    ctx.mark_free_blocks_in_region(_batches(free), lambda p: p, 0, 0, region, True)
    rec = _ListRecorder()
    release_free_memory_to_os(ctx, rec, _never)
    released = {
        page for start, end in rec.ranges for page in range(start // PS, end // PS)
    }
    busy = {(i * 16) // PS for i in allocated}
    assert released == set(range(4)) - busy