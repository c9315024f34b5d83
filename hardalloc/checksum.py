"""Header checksums: a 16-bit BSD checksum and CRC-32C."""

from __future__ import annotations

import enum
import functools
import platform as _host
from typing import Iterable

__all__ = [
    "Checksum",
    "DEFAULT_ALGORITHM",
    "compute_bsd_checksum",
    "has_hardware_crc32",
    "compute_hardware_crc32",
    "compute_checksum",
]

_U16_MASK = 0xFFFF
_U32_MASK = 0xFFFFFFFF
_U64_MASK = 0xFFFFFFFFFFFFFFFF
_WORD_BYTES = 8
_CRC32C_POLYNOMIAL = 0x82F63B78

_X86_MACHINES = frozenset({"x86_64", "amd64", "i386", "i486", "i586", "i686", "x86"})
_X86_VENDORS = frozenset({"GenuineIntel", "AuthenticAMD", "HygonGenuine"})


class Checksum(enum.IntEnum):
    """Algorithm used to checksum chunk headers."""

    BSD = 0
    HARDWARE_CRC32 = 1


DEFAULT_ALGORITHM = Checksum.BSD


def _build_crc32c_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte
        for _ in range(8):
            crc = (crc >> 1) ^ (_CRC32C_POLYNOMIAL if crc & 1 else 0)
        table.append(crc)
    return tuple(table)


_CRC32C_TABLE = _build_crc32c_table()


def compute_bsd_checksum(checksum: int, data: int) -> int:
    """Fold the eight bytes of a 64-bit word into a 16-bit BSD checksum."""
    total = checksum & _U16_MASK
    data &= _U64_MASK
    for _ in range(_WORD_BYTES):
        total = (total >> 1) | ((total & 1) << 15)
        total = (total + (data & 0xFF)) & _U16_MASK
        data >>= 8
    return total


def _read_cpuinfo() -> dict[str, str]:
    try:
        with open("/proc/cpuinfo", encoding="utf-8", errors="replace") as handle:
            lines = handle.read().splitlines()
    except OSError:
        return {}
    fields: dict[str, str] = {}
    for line in lines:
        key, sep, value = line.partition(":")
        if sep:
            fields.setdefault(key.strip(), value.strip())
    return fields


@functools.lru_cache(maxsize=None)
def has_hardware_crc32() -> bool:
    """Return whether the CPU offers CRC-32C instructions."""
    machine = _host.machine().lower()
    if machine in _X86_MACHINES:
        info = _read_cpuinfo()
        if info.get("vendor_id") not in _X86_VENDORS:
            return False
        return "sse4_2" in info.get("flags", "").split()
    if machine.startswith(("arm", "aarch64")):
        return "crc32" in _read_cpuinfo().get("Features", "").split()
    return False


def compute_hardware_crc32(crc: int, data: int) -> int:
    """Update a CRC-32C register with a 64-bit word, least significant byte first.

    No initial or final inversion is applied, matching the CPU instruction.
    """
    crc &= _U32_MASK
    data &= _U64_MASK
    for _ in range(_WORD_BYTES):
        crc = _CRC32C_TABLE[(crc ^ data) & 0xFF] ^ (crc >> 8)
        data >>= 8
    return crc


def compute_checksum(
    seed: int,
    value: int,
    array: Iterable[int] = (),
    algorithm: Checksum = DEFAULT_ALGORITHM,
) -> int:
    """Return a 16-bit checksum of ``value`` followed by the words of ``array``."""
    if algorithm is Checksum.HARDWARE_CRC32:
        crc = compute_hardware_crc32(seed, value)
        for word in array:
            crc = compute_hardware_crc32(crc, word)
        return (crc ^ (crc >> 16)) & _U16_MASK
    checksum = compute_bsd_checksum(seed & _U16_MASK, value)
    for word in array:
        checksum = compute_bsd_checksum(checksum, word)
    return checksum