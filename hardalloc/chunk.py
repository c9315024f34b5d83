"""Chunk headers: packing into a 64-bit word and checksum protection."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass

from .checksum import DEFAULT_ALGORITHM, Checksum, compute_checksum
from .common import round_up
from .report import report_header_corruption

__all__ = [
    "MIN_ALIGNMENT_LOG",
    "CLASS_ID_MASK",
    "STATE_MASK",
    "ORIGIN_MASK",
    "SIZE_OR_UNUSED_BYTES_MASK",
    "OFFSET_MASK",
    "CHECKSUM_MASK",
    "Origin",
    "State",
    "UnpackedHeader",
    "get_header_size",
    "pack_header",
    "unpack_header",
    "compute_header_checksum",
    "store_header",
    "load_header",
    "is_valid",
]

# Minimum allocation alignment on 64-bit targets is 16 bytes.
MIN_ALIGNMENT_LOG = 4
_PACKED_HEADER_SIZE = 8

CLASS_ID_MASK = (1 << 8) - 1
STATE_MASK = (1 << 2) - 1
ORIGIN_MASK = (1 << 2) - 1
SIZE_OR_UNUSED_BYTES_MASK = (1 << 20) - 1
OFFSET_MASK = (1 << 16) - 1
CHECKSUM_MASK = (1 << 16) - 1

# (field, bit offset, bit width), least significant field first.
_LAYOUT = (
    ("class_id", 0, 8),
    ("state", 8, 2),
    ("origin_or_was_zeroed", 10, 2),
    ("size_or_unused_bytes", 12, 20),
    ("offset", 32, 16),
    ("checksum", 48, 16),
)
_PACKED_MASK = (1 << 64) - 1


class Origin(enum.IntEnum):
    MALLOC = 0
    NEW = 1
    NEW_ARRAY = 2
    MEMALIGN = 3


class State(enum.IntEnum):
    AVAILABLE = 0
    ALLOCATED = 1
    QUARANTINED = 2


@dataclass
class UnpackedHeader:
    """The fields of a chunk header.

    ``origin_or_was_zeroed`` holds the origin while the chunk is allocated and
    whether it was zeroed otherwise.
    """

    class_id: int = 0
    state: int = 0
    origin_or_was_zeroed: int = 0
    size_or_unused_bytes: int = 0
    offset: int = 0
    checksum: int = 0


def get_header_size() -> int:
    """Return the space a header takes in front of a chunk."""
    return round_up(_PACKED_HEADER_SIZE, 1 << MIN_ALIGNMENT_LOG)


def pack_header(header: UnpackedHeader) -> int:
    """Pack the header into a 64-bit word. Raises ValueError if a field does not fit."""
    packed = 0
    for name, shift, width in _LAYOUT:
        value = int(getattr(header, name))
        if not 0 <= value < (1 << width):
            raise ValueError(f"{name}={value} does not fit in {width} bits")
        packed |= value << shift
    return packed


def unpack_header(packed: int) -> UnpackedHeader:
    """Split a 64-bit word into header fields."""
    if not 0 <= packed <= _PACKED_MASK:
        raise ValueError(f"packed header {packed} is not a 64-bit value")
    return UnpackedHeader(
        **{name: (packed >> shift) & ((1 << width) - 1) for name, shift, width in _LAYOUT}
    )


def compute_header_checksum(
    cookie: int,
    ptr: int,
    header: UnpackedHeader,
    algorithm: Checksum = DEFAULT_ALGORITHM,
) -> int:
    """Checksum the header, with its checksum field taken as zero, and its address."""
    zeroed = pack_header(dataclasses.replace(header, checksum=0))
    return compute_checksum(cookie, ptr, (zeroed,), algorithm)


def store_header(
    cookie: int,
    ptr: int,
    header: UnpackedHeader,
    algorithm: Checksum = DEFAULT_ALGORITHM,
) -> int:
    """Set the header's checksum and return the packed word to store."""
    header.checksum = compute_header_checksum(cookie, ptr, header, algorithm)
    return pack_header(header)


def load_header(
    cookie: int,
    ptr: int,
    packed: int,
    algorithm: Checksum = DEFAULT_ALGORITHM,
) -> UnpackedHeader:
    """Unpack a stored header, raising ScudoError if its checksum does not match."""
    header = unpack_header(packed)
    if header.checksum != compute_header_checksum(cookie, ptr, header, algorithm):
        report_header_corruption(ptr)
    return header


def is_valid(
    cookie: int,
    ptr: int,
    packed: int,
    algorithm: Checksum = DEFAULT_ALGORITHM,
) -> bool:
    """Return whether the stored header's checksum matches."""
    header = unpack_header(packed)
    return header.checksum == compute_header_checksum(cookie, ptr, header, algorithm)