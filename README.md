# hardalloc

`hardalloc` holds the pieces of a hardened memory allocator that can be used without the allocator itself: header checksums, option parsing, error reports, page-release accounting and timing. Each module can be used and tested on its own. The package has no dependencies outside the standard library.

## Modules

- **`hardalloc.common`**
  - Alignment and power-of-two helpers: `is_power_of_two`, `round_up`, `round_down`, `is_aligned`, their `*_slow` forms, `round_up_power_of_two`, `get_log2` and the set-bit index functions.
  - `XorShift32`, a 32-bit xorshift generator with `next_u32`, `next_mod` and an in-place `shuffle`.
  - `compute_percentage(numerator, denominator)`, which returns `(integral, fractional)`.
  - `get_page_size_cached()` and the enums `Option`, `ReleaseToOS`, `FillContentsMode` and `MapFlags`, plus the `BlockInfo` dataclass.
- **`hardalloc.platform`**
  - `get_page_size`, `get_monotonic_time`, `get_monotonic_time_fast`, `get_number_of_cpus`, `get_thread_id`, `get_env`.
  - `get_random(length, blocking=False)`: up to 256 random bytes, or `None` on failure or a bad length.
  - `output_raw` writes to standard error; `die` aborts the process.
  - `HybridMutex`, a non-recursive lock usable as a context manager.
- **`hardalloc.bytemap`**
  - `FlatByteMap`, a fixed-size array of bytes where each slot may be set once.
- **`hardalloc.string_utils`**
  - `format_string(fmt, *args)`, a small printf-style formatter supporting `%d %u %x %X` (with width, zero padding, `z`, `ll`, `ld`, `lu`), `%p`, `%s` (left-justified width, `.*` precision), `%c` and `%%`. Unsupported formats raise `FormatError`.
  - `format_string_bounded(buffer_length, fmt, *args)` returns the text that fits a buffer of that size and the full length.
  - `ScopedString` and `printf`.
- **`hardalloc.report`**
  - `report_*` functions for each fatal condition. Each one raises `ScudoError`, whose `message` holds the full report text.
  - `AllocatorAction` names the operation that failed.
- **`hardalloc.checksum`**
  - `compute_bsd_checksum`: the 16-bit BSD checksum.
  - `compute_hardware_crc32`: CRC-32C computed in software.
  - `compute_checksum`: selects between the two with the `Checksum` enum.
  - `has_hardware_crc32`: reports whether the CPU has CRC-32 instructions, read from `/proc/cpuinfo`.
- **`hardalloc.chunk`**
  - `UnpackedHeader`, `pack_header` and `unpack_header` for 64-bit chunk headers.
  - `store_header`, `load_header` and `is_valid` for checksum-protected headers.
  - The `Origin` and `State` enums.
- **`hardalloc.flags_parser`**
  - `FlagParser` parses strings such as `"a=1:b=false"` and calls the setter registered for each flag. Bool and int flags are supported.
  - Unknown names are collected by an `UnknownFlagsRegistry` and printed by `report_unrecognized_flags()`.
- **`hardalloc.timing`**
  - `Timer`, `ScopedTimer` (a context manager) and `TimingManager`.
  - `TimingManager` collects timings and reports the average time per named timer, with nested timers indented.
  - Every `printing_interval` reports it prints the table to standard error. `format_all()` returns the table as a string.
- **`hardalloc.allocator_common`**
  - `TransferBatch`, a bounded batch of compact pointers.
  - `BatchGroup`.
- **`hardalloc.interface`**
  - `ErrorType`, `ErrorReport`, `ErrorInfo` and the `MallOpt` option numbers.
- **`hardalloc.release`**
  - Release recorders: `ReleaseRecorder`, `RegionReleaseRecorder` and `FragmentationRecorder`.
  - `BufferPool`, a pool of reusable word buffers.
  - `RegionPageMap`, packed per-page counters.
- **`hardalloc.page_release`**
  - `PageReleaseContext` counts free blocks per page.
  - `release_free_memory_to_os` passes every page that holds only free blocks to a recorder, merging adjacent pages into ranges with `FreePagesRangeTracker`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

### Formatting

```python
from hardalloc.string_utils import format_string

format_string("%08x %-5s|", 0xBEEF, "ab")   # '0000beef ab   |'
```

### Parsing flags

```python
from hardalloc.flags_parser import FlagParser, FlagType

values = {}
parser = FlagParser()
parser.register_flag(
    "release_to_os_interval_ms", "Interval in ms.", FlagType.INT,
    lambda v: values.__setitem__("interval", v),
)
parser.parse_string("release_to_os_interval_ms=5000")
values["interval"]   # 5000
```

A malformed value raises `ScudoError`.

### Checking a chunk header

```python
from hardalloc.checksum import Checksum
from hardalloc.chunk import UnpackedHeader, State, store_header, load_header

header = UnpackedHeader(class_id=3, state=State.ALLOCATED)
packed = store_header(0x1234, 0x7000, header, Checksum.BSD)
load_header(0x1234, 0x7000, packed, Checksum.BSD)  # the header back, checksum filled in
```

`load_header` raises `ScudoError` if the packed header has been corrupted.

### Finding releasable pages

```python
from hardalloc.page_release import PageReleaseContext, release_free_memory_to_os
from hardalloc.release import ReleaseRecorder

context = PageReleaseContext(block_size=1024, number_of_regions=1,
                             release_size=4096, page_size=4096)
context.mark_free_blocks_in_region([[0, 1024, 2048, 3072]], lambda p: p,
                                   base=0, region_index=0, region_size=4096,
                                   may_contain_last_block_in_region=False)
recorder = ReleaseRecorder(base=0)
release_free_memory_to_os(context, recorder, lambda region: False)
recorder.released_bytes   # 4096
```

`ReleaseRecorder` takes an optional `releaser(base, offset, size)` callable. Without one it only counts the ranges.

### Timing code blocks

```python
from hardalloc.timing import TimingManager, ScopedTimer

manager = TimingManager()
with ScopedTimer(manager, "work"):
    sum(range(1000))
print(manager.format_all())
```

## What this package does not do

There is no allocator here:

- no `malloc`/`free`,
- no size-class primary or secondary allocator,
- no thread caches,
- no quarantine.

The package also never maps, protects or releases real memory. Page release and buffer pools work on Python lists and call the recorder or `releaser` you supply. There is no command-line program.