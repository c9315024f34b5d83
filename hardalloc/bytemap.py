"""A fixed-size map from indices to write-once byte values."""

from __future__ import annotations


class FlatByteMap:
    """A flat array of bytes where each slot may be set once from zero."""

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("size must not be negative")
        self._map = bytearray(size)
        self.disabled = False

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._map):
            raise IndexError(f"index {index} out of range for map of {len(self._map)}")

    def init(self) -> None:
        """Check that the map starts out cleared."""
        if self._map and self._map[0] != 0:
            raise ValueError("byte map is not cleared")

    def unmap_test_only(self) -> None:
        """Clear every slot."""
        self._map[:] = bytes(len(self._map))

    def set(self, index: int, value: int) -> None:
        """Store a byte value in a slot that is still zero."""
        self._check_index(index)
        if self._map[index] != 0:
            raise ValueError(f"slot {index} is already set")
        self._map[index] = value

    def __getitem__(self, index: int) -> int:
        self._check_index(index)
        return self._map[index]

    def __len__(self) -> int:
        return len(self._map)

    def disable(self) -> None:
        """Mark the map as disabled; a flat map needs no locking."""
        self.disabled = True

    def enable(self) -> None:
        """Mark the map as enabled again."""
        self.disabled = False