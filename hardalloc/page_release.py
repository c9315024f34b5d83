"""Find pages that hold only free blocks and hand them to a release recorder."""

from __future__ import annotations

from typing import Callable, Iterable, Protocol

from .common import (
    get_log2,
    get_page_size_cached,
    round_down,
    round_down_slow,
    round_up,
    round_up_slow,
)
from .release import BufferPool, RegionPageMap

__all__ = [
    "FreePagesRangeTracker",
    "PageReleaseContext",
    "release_free_memory_to_os",
]


class _Recorder(Protocol):
    def release_page_range_to_os(self, from_: int, to: int) -> None: ...


class FreePagesRangeTracker:
    """Merges consecutive releasable pages into ranges passed to a recorder."""

    def __init__(self, recorder: _Recorder, page_size: int | None = None) -> None:
        self.recorder = recorder
        self.page_size_log = get_log2(
            page_size if page_size is not None else get_page_size_cached()
        )
        self._in_range = False
        self.current_page = 0
        self._range_start_page = 0

    def process_next_page(self, released: bool) -> None:
        """Account for the next page, which may or may not be releasable."""
        if released:
            if not self._in_range:
                self._range_start_page = self.current_page
                self._in_range = True
        else:
            self._close_opened_range()
        self.current_page += 1

    def skip_pages(self, n: int) -> None:
        """Close any open range and move past ``n`` pages."""
        self._close_opened_range()
        self.current_page += n

    def finish(self) -> None:
        """Flush the range still open, if any."""
        self._close_opened_range()

    def _close_opened_range(self) -> None:
        if self._in_range:
            self.recorder.release_page_range_to_os(
                self._range_start_page << self.page_size_log,
                self.current_page << self.page_size_log,
            )
            self._in_range = False


class PageReleaseContext:
    """Counts free blocks per page of one or more regions of equal-size blocks."""

    def __init__(
        self,
        block_size: int,
        number_of_regions: int,
        release_size: int,
        release_offset: int = 0,
        *,
        page_size: int | None = None,
        pool: BufferPool | None = None,
    ) -> None:
        if block_size <= 0:
            raise ValueError("block size must be positive")
        if number_of_regions <= 0:
            raise ValueError("number of regions must be positive")
        if number_of_regions != 1 and release_offset != 0:
            raise ValueError("a release offset needs a single region")
        self.block_size = block_size
        self.number_of_regions = number_of_regions
        self.page_size = page_size if page_size is not None else get_page_size_cached()
        ps = self.page_size
        if block_size <= ps:
            if ps % block_size == 0:
                self.full_pages_block_count_max = ps // block_size
                self.same_block_count_per_page = True
            elif block_size % (ps % block_size) == 0:
                self.full_pages_block_count_max = ps // block_size + 1
                self.same_block_count_per_page = True
            else:
                self.full_pages_block_count_max = ps // block_size + 2
                self.same_block_count_per_page = False
        elif block_size % ps == 0:
            self.full_pages_block_count_max = 1
            self.same_block_count_per_page = True
        else:
            self.full_pages_block_count_max = 2
            self.same_block_count_per_page = False

        self.pages_count = round_up(release_size, ps) // ps
        self.page_size_log = get_log2(ps)
        self.release_page_offset = release_offset >> self.page_size_log
        self.page_map = RegionPageMap(pool=pool)

    def has_block_marked(self) -> bool:
        """Whether the page map has been allocated by a marking call."""
        return self.page_map.is_allocated()

    def ensure_page_map_allocated(self) -> bool:
        if self.page_map.is_allocated():
            return True
        self.page_map.reset(
            self.number_of_regions, self.pages_count, self.full_pages_block_count_max
        )
        return self.page_map.is_allocated()

    def mark_range_as_all_counted(
        self, from_: int, to: int, base: int, region_index: int, region_size: int
    ) -> bool:
        """Mark every block in [from_, to) as free without visiting each one.

        ``from_`` must be page aligned; ``to`` too unless it ends the region.
        """
        ps = self.page_size
        bs = self.block_size
        if from_ >= to:
            raise ValueError("empty range")
        if to > base + region_size or to - from_ > region_size:
            raise ValueError("range exceeds the region")
        if from_ % ps:
            raise ValueError("range start must be page aligned")

        if not self.ensure_page_map_allocated():
            return False

        from_in_region = from_ - base
        to_in_region = to - base
        first_block_in_range = round_up_slow(from_in_region, bs)

        # One block straddles the whole range.
        if first_block_in_range >= to_in_region:
            return True

        from_in_region = round_down(first_block_in_range, ps)

        if first_block_in_range != from_in_region:
            num_blocks_in_first_page = (
                from_in_region + ps - first_block_in_range + bs - 1
            ) // bs
            self.page_map.inc_n(
                region_index, self.get_page_index(from_in_region), num_blocks_in_first_page
            )
            from_in_region = round_up(from_in_region + 1, ps)

        last_block_in_range = round_down_slow(to_in_region - 1, bs)

        if last_block_in_range + bs != region_size:
            if to_in_region % ps:
                raise ValueError("range end must be page aligned inside the region")
            if last_block_in_range + bs != to_in_region:
                self.page_map.inc_range(
                    region_index,
                    self.get_page_index(to_in_region),
                    self.get_page_index(last_block_in_range + bs - 1),
                )
        else:
            to_in_region = region_size

        if from_in_region < to_in_region:
            self.page_map.set_as_all_counted_range(
                region_index,
                self.get_page_index(from_in_region),
                self.get_page_index(to_in_region - 1),
            )
        return True

    def mark_free_blocks_in_region(
        self,
        free_list: Iterable[Iterable[int]],
        decompact_ptr: Callable[[int], int],
        base: int,
        region_index: int,
        region_size: int,
        may_contain_last_block_in_region: bool,
    ) -> bool:
        """Count the free blocks of ``free_list`` against the pages they touch."""
        if not self.ensure_page_map_allocated():
            return False
        ps = self.page_size
        bs = self.block_size

        if may_contain_last_block_in_region:
            last_block_in_region = ((region_size // bs) - 1) * bs
            rounded_region_size = round_up(region_size, ps)
            trailing_block_base = last_block_in_region + bs
            if rounded_region_size - trailing_block_base >= ps:
                raise ValueError("region size is inconsistent with its last block")
            num_trailing_blocks = (
                round_up_slow(rounded_region_size - trailing_block_base, bs) + bs - 1
            ) // bs
            if num_trailing_blocks > 0:
                self.page_map.inc_n(
                    region_index,
                    self.get_page_index(trailing_block_base),
                    num_trailing_blocks,
                )

        if bs <= ps and ps % bs == 0:
            for batch in free_list:
                for compact in batch:
                    p_in_region = decompact_ptr(compact) - base
                    if not 0 <= p_in_region < region_size:
                        raise ValueError(f"block {p_in_region} lies outside the region")
                    self.page_map.inc(region_index, self.get_page_index(p_in_region))
        else:
            if region_size < bs:
                raise ValueError("region is smaller than one block")
            for batch in free_list:
                for compact in batch:
                    p_in_region = decompact_ptr(compact) - base
                    self.page_map.inc_range(
                        region_index,
                        self.get_page_index(p_in_region),
                        self.get_page_index(p_in_region + bs - 1),
                    )
        return True

    def get_page_index(self, p: int) -> int:
        return (p >> self.page_size_log) - self.release_page_offset

    def get_release_offset(self) -> int:
        return self.release_page_offset << self.page_size_log


def release_free_memory_to_os(
    context: PageReleaseContext,
    recorder: _Recorder,
    skip_region: Callable[[int], bool],
) -> None:
    """Pass every page that holds only free blocks to ``recorder``."""
    ps = context.page_size
    bs = context.block_size
    pages_count = context.pages_count
    page_map = context.page_map
    tracker = FreePagesRangeTracker(recorder, ps)

    if context.same_block_count_per_page:
        for region in range(context.number_of_regions):
            if skip_region(region):
                tracker.skip_pages(pages_count)
                continue
            for page in range(pages_count):
                tracker.process_next_page(
                    page_map.update_as_all_counted_if(
                        region, page, context.full_pages_block_count_max
                    )
                )
    else:
        pn = ps // bs if bs < ps else 1
        pnc = pn * bs
        for region in range(context.number_of_regions):
            if skip_region(region):
                tracker.skip_pages(pages_count)
                continue
            prev_page_boundary = 0
            current_boundary = 0
            if context.release_page_offset > 0:
                prev_page_boundary = context.release_page_offset * ps
                current_boundary = round_up_slow(prev_page_boundary, bs)
            for page in range(pages_count):
                page_boundary = prev_page_boundary + ps
                blocks_per_page = pn
                if current_boundary < page_boundary:
                    if current_boundary > prev_page_boundary:
                        blocks_per_page += 1
                    current_boundary += pnc
                    if current_boundary < page_boundary:
                        blocks_per_page += 1
                        current_boundary += bs
                prev_page_boundary = page_boundary
                tracker.process_next_page(
                    page_map.update_as_all_counted_if(region, page, blocks_per_page)
                )
    tracker.finish()