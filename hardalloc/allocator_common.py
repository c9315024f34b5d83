"""Batches of compact block pointers moved between caches and the primary allocator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

__all__ = ["TransferBatch", "BatchGroup"]


class TransferBatch:
    """A bounded batch of compact pointers."""

    def __init__(self, max_cached: int) -> None:
        if max_cached <= 0:
            raise ValueError("max_cached must be positive")
        self.max_cached = max_cached
        self._batch: list[int] = []

    def _check_room(self, n: int) -> None:
        if n > self.max_cached - len(self._batch):
            raise ValueError(
                f"cannot hold {n} more pointers: {len(self._batch)} of "
                f"{self.max_cached} already used"
            )

    def set_from_array(self, items: Iterable[int]) -> None:
        """Replace the contents with ``items``."""
        values = list(items)
        if len(values) > self.max_cached:
            raise ValueError(f"at most {self.max_cached} pointers fit in a batch")
        self._batch = values

    def append_from_array(self, items: Iterable[int]) -> None:
        """Append ``items`` after the current contents."""
        values = list(items)
        self._check_room(len(values))
        self._batch.extend(values)

    def append_from_transfer_batch(self, other: TransferBatch, n: int) -> None:
        """Move the last ``n`` pointers of ``other`` to the end of this batch."""
        if n < 0:
            raise ValueError("count must not be negative")
        self._check_room(n)
        if len(other) < n:
            raise ValueError(f"source batch holds only {len(other)} pointers")
        if n == 0:
            return
        self._batch.extend(other._batch[-n:])
        del other._batch[-n:]

    def clear(self) -> None:
        self._batch.clear()

    def add(self, ptr: int) -> None:
        """Append one pointer."""
        self._check_room(1)
        self._batch.append(ptr)

    def move_to_array(self) -> list[int]:
        """Return the contents and empty the batch."""
        values = self._batch
        self._batch = []
        return values

    def is_empty(self) -> bool:
        return not self._batch

    def get(self, index: int) -> int:
        if not 0 <= index < len(self._batch):
            raise IndexError(f"index {index} out of range for batch of {len(self._batch)}")
        return self._batch[index]

    def __len__(self) -> int:
        return len(self._batch)

    def __iter__(self) -> Iterator[int]:
        return iter(self._batch)


@dataclass
class BatchGroup:
    """Blocks of one address group, held as a list of transfer batches."""

    compact_ptr_group_base: int = 0
    max_cached_per_batch: int = 0
    pushed_blocks: int = 0
    bytes_in_bg_at_last_checkpoint: int = 0
    batches: list[TransferBatch] = field(default_factory=list)