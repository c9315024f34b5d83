"""Public types of the allocator interface: error reports and tuning options."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

__all__ = [
    "TRACE_LENGTH",
    "MAX_REPORTS",
    "MEMTAG_TUNING_BUFFER_OVERFLOW",
    "MEMTAG_TUNING_UAF",
    "ErrorType",
    "ErrorReport",
    "ErrorInfo",
    "MallOpt",
]

TRACE_LENGTH = 64
MAX_REPORTS = 3

MEMTAG_TUNING_BUFFER_OVERFLOW = 0
MEMTAG_TUNING_UAF = 1


class ErrorType(enum.IntEnum):
    UNKNOWN = 0
    USE_AFTER_FREE = 1
    BUFFER_OVERFLOW = 2
    BUFFER_UNDERFLOW = 3


def _pad_trace(trace: list[int], what: str) -> list[int]:
    if len(trace) > TRACE_LENGTH:
        raise ValueError(f"{what} holds more than {TRACE_LENGTH} frames")
    return list(trace) + [0] * (TRACE_LENGTH - len(trace))


@dataclass
class ErrorReport:
    """One likely cause of a memory error; traces are padded with zeros to 64 frames."""

    error_type: ErrorType = ErrorType.UNKNOWN
    allocation_address: int = 0
    allocation_size: int = 0
    allocation_tid: int = 0
    allocation_trace: list[int] = field(default_factory=list)
    deallocation_tid: int = 0
    deallocation_trace: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.error_type = ErrorType(self.error_type)
        self.allocation_trace = _pad_trace(self.allocation_trace, "allocation trace")
        self.deallocation_trace = _pad_trace(self.deallocation_trace, "deallocation trace")


@dataclass
class ErrorInfo:
    """Up to three reports, most likely first; missing ones are empty reports."""

    reports: list[ErrorReport] = field(default_factory=list)

    def __post_init__(self) -> None:
        if len(self.reports) > MAX_REPORTS:
            raise ValueError(f"at most {MAX_REPORTS} reports are supported")
        self.reports = list(self.reports) + [
            ErrorReport() for _ in range(MAX_REPORTS - len(self.reports))
        ]


class MallOpt(enum.IntEnum):
    """Parameters accepted by the allocator's option interface."""

    DECAY_TIME = -100
    PURGE = -101
    MEMTAG_TUNING = -102
    THREAD_DISABLE_MEM_INIT = -103
    PURGE_ALL = -104
    CACHE_COUNT_MAX = -200
    CACHE_SIZE_MAX = -201
    TSDS_COUNT_MAX = -202
    LOG_STATS = -205