"""Fatal error reports, raised as exceptions carrying the report text."""

from __future__ import annotations

import enum

from .common import get_page_size_cached
from .platform import set_abort_message
from .string_utils import format_string, format_string_bounded

__all__ = [
    "ScudoError",
    "AllocatorAction",
    "report_check_failed",
    "report_error",
    "report_raw_error",
    "report_invalid_flag",
    "report_header_corruption",
    "report_sanity_check_error",
    "report_alignment_too_big",
    "report_allocation_size_too_big",
    "report_out_of_batch_class",
    "report_out_of_memory",
    "report_invalid_chunk_state",
    "report_misaligned_pointer",
    "report_dealloc_type_mismatch",
    "report_delete_size_mismatch",
    "report_alignment_not_power_of_two",
    "report_calloc_overflow",
    "report_invalid_posix_memalign_alignment",
    "report_pvalloc_overflow",
    "report_invalid_aligned_alloc_alignment",
    "report_map_error",
    "report_unmap_error",
    "report_protect_error",
]

_PREFIX = "Scudo ERROR: "
_POINTER_SIZE = 8
_PLATFORM_ERROR_BUFFER = 128


class ScudoError(RuntimeError):
    """A fatal allocator error; ``message`` holds the full report text."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AllocatorAction(enum.Enum):
    RECYCLING = "recycling"
    DEALLOCATING = "deallocating"
    REALLOCATING = "reallocating"
    SIZING = "sizing"


def report_raw_error(message: str) -> None:
    """Raise the message unchanged."""
    set_abort_message(message)
    raise ScudoError(message)


def _report(fmt: str, *args) -> None:
    report_raw_error(_PREFIX + format_string(fmt, *args))


def report_check_failed(file: str, line: int, condition: str, value1: int, value2: int) -> None:
    _report(
        "CHECK failed @ %s:%d %s ((u64)op1=%llu, (u64)op2=%llu)\n",
        file, line, condition, value1, value2,
    )


def report_error(message: str) -> None:
    _report("%s\n", message)


def report_invalid_flag(flag_type: str, value: str) -> None:
    _report("invalid value for %s option: '%s'\n", flag_type, value)


def report_header_corruption(ptr: int) -> None:
    _report("corrupted chunk header at address %p\n", ptr)


def report_sanity_check_error(field: str) -> None:
    _report("maximum possible %s doesn't fit in header\n", field)


def report_alignment_too_big(alignment: int, max_alignment: int) -> None:
    _report(
        "invalid allocation alignment: %zu exceeds maximum supported alignment of %zu\n",
        alignment, max_alignment,
    )


def report_allocation_size_too_big(user_size: int, total_size: int, max_size: int) -> None:
    _report(
        "requested allocation size %zu (%zu after adjustments) exceeds "
        "maximum supported size of %zu\n",
        user_size, total_size, max_size,
    )


def report_out_of_batch_class() -> None:
    _report("BatchClass region is used up, can't hold any free block\n")


def report_out_of_memory(requested_size: int) -> None:
    _report("out of memory trying to allocate %zu bytes\n", requested_size)


def report_invalid_chunk_state(action: AllocatorAction, ptr: int) -> None:
    _report("invalid chunk state when %s address %p\n", action.value, ptr)


def report_misaligned_pointer(action: AllocatorAction, ptr: int) -> None:
    _report("misaligned pointer when %s address %p\n", action.value, ptr)


def report_dealloc_type_mismatch(action: AllocatorAction, ptr: int, type_a: int, type_b: int) -> None:
    _report(
        "allocation type mismatch when %s address %p (%d vs %d)\n",
        action.value, ptr, type_a, type_b,
    )


def report_delete_size_mismatch(ptr: int, size: int, expected_size: int) -> None:
    _report(
        "invalid sized delete when deallocating address %p (%zu vs %zu)\n",
        ptr, size, expected_size,
    )


def report_alignment_not_power_of_two(alignment: int) -> None:
    _report(
        "invalid allocation alignment: %zu, alignment must be a power of two\n",
        alignment,
    )


def report_calloc_overflow(count: int, size: int) -> None:
    _report(
        "calloc parameters overflow: count * size (%zu * %zu) cannot "
        "be represented with type size_t\n",
        count, size,
    )


def report_invalid_posix_memalign_alignment(alignment: int) -> None:
    _report(
        "invalid alignment requested in posix_memalign: %zu, alignment must be a "
        "power of two and a multiple of sizeof(void *) == %zu\n",
        alignment, _POINTER_SIZE,
    )


def report_pvalloc_overflow(size: int) -> None:
    _report(
        "pvalloc parameters overflow: size %zu rounded up to system "
        "page size %zu cannot be represented in type size_t\n",
        size, get_page_size_cached(),
    )


def report_invalid_aligned_alloc_alignment(alignment: int, size: int) -> None:
    _report(
        "invalid alignment requested in aligned_alloc: %zu, alignment "
        "must be a power of two and the requested size %zu must be a "
        "multiple of alignment\n",
        alignment, size,
    )


def _bounded(fmt: str, *args) -> str:
    return format_string_bounded(_PLATFORM_ERROR_BUFFER, fmt, *args)[0]


def report_map_error(size_if_oom: int = 0) -> None:
    """Report a failed map; ``size_if_oom`` is the requested size when out of memory."""
    message = "Scudo ERROR: internal map failure\n"
    if size_if_oom:
        message = _bounded(
            "Scudo ERROR: internal map failure (NO MEMORY) requesting %zuKB\n",
            size_if_oom >> 10,
        )
    report_raw_error(message)


def report_unmap_error(addr: int, size: int, error_description: str | None = None) -> None:
    report_raw_error(
        _bounded(
            "Scudo ERROR: internal unmap failure (error desc=%s) Addr 0x%zx Size %zu\n",
            error_description, addr, size,
        )
    )


def report_protect_error(addr: int, size: int, prot: int, error_description: str | None = None) -> None:
    report_raw_error(
        _bounded(
            "Scudo ERROR: internal protect failure (error desc=%s) Addr 0x%zx "
            "Size %zu Prot %x\n",
            error_description, addr, size, prot,
        )
    )