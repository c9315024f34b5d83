"""Operating-system services: page size, time, randomness, output and locking."""

from __future__ import annotations

import mmap
import os
import sys
import threading
import time

MAX_RANDOM_LENGTH = 256
"""Largest number of random bytes that a single :func:`get_random` call returns."""

_abort_message: str | None = None


class HybridMutex:
    """A non-recursive mutex that can also be used as a context manager."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_lock(self) -> bool:
        """Take the lock if it is free; return whether it was taken."""
        return self._lock.acquire(blocking=False)

    def lock(self) -> None:
        """Take the lock, waiting for it if needed."""
        self._lock.acquire()

    def unlock(self) -> None:
        """Release the lock. Raises RuntimeError if it is not held."""
        self._lock.release()

    def assert_held(self) -> None:
        """Raise RuntimeError unless the lock is currently held."""
        if not self._lock.locked():
            raise RuntimeError("mutex is not held")

    def __enter__(self) -> HybridMutex:
        self.lock()
        return self

    def __exit__(self, *args) -> None:
        self.unlock()


def get_page_size() -> int:
    """Return the system page size in bytes."""
    try:
        size = os.sysconf("SC_PAGESIZE")
    except (AttributeError, ValueError, OSError):
        size = mmap.PAGESIZE
    return int(size)


def die() -> None:
    """Abort the process immediately."""
    os.abort()


def get_env(name: str) -> str | None:
    """Return the value of an environment variable, or None when it is unset."""
    return os.environ.get(name)


def get_monotonic_time() -> int:
    """Return monotonic time in nanoseconds."""
    return time.monotonic_ns()


def get_monotonic_time_fast() -> int:
    """Return monotonic time in nanoseconds, using a coarser clock where one exists."""
    coarse = getattr(time, "CLOCK_MONOTONIC_COARSE", None)
    if coarse is not None:
        try:
            return time.clock_gettime_ns(coarse)
        except OSError:
            pass
    return get_monotonic_time()


def get_number_of_cpus() -> int:
    """Return the number of CPUs this process may run on, or 0 if unknown."""
    affinity = getattr(os, "sched_getaffinity", None)
    if affinity is not None:
        try:
            return len(affinity(0))
        except OSError:
            return 0
    return os.cpu_count() or 0


def get_thread_id() -> int:
    """Return the operating-system identifier of the calling thread."""
    return threading.get_native_id()


def get_random(length: int, blocking: bool = False) -> bytes | None:
    """Return ``length`` random bytes, or None on failure or an invalid length."""
    if length <= 0 or length > MAX_RANDOM_LENGTH:
        return None
    getrandom = getattr(os, "getrandom", None)
    if getrandom is not None:
        flags = 0 if blocking else os.GRND_NONBLOCK
        try:
            data = getrandom(length, flags)
        except OSError:
            data = b""
        if len(data) == length:
            return data
    try:
        with open("/dev/urandom", "rb") as handle:
            data = handle.read(length)
    except OSError:
        return None
    return data if len(data) == length else None


def output_raw(text: str) -> None:
    """Write text to standard error as is."""
    sys.stderr.write(text)
    sys.stderr.flush()


def set_abort_message(message: str) -> None:
    """Record the message that explains an imminent abort."""
    global _abort_message
    _abort_message = message