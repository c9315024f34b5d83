"""Timers that measure code sections and a manager that reports their averages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .platform import HybridMutex, get_monotonic_time, output_raw
from .string_utils import ScopedString

__all__ = [
    "MAX_NUMBER_OF_TIMERS",
    "MAX_LEN_OF_TIMER_NAME",
    "DEFAULT_PRINTING_INTERVAL",
    "Timer",
    "ScopedTimer",
    "TimingManager",
]

MAX_NUMBER_OF_TIMERS = 50
MAX_LEN_OF_TIMER_NAME = 50
DEFAULT_PRINTING_INTERVAL = 100

_NAME_HEADER = "-- Name (# of Calls) --"
_AVG_HEADER = "-- Average Operation Time --"

Clock = Callable[[], int]


class Timer:
    """Accumulates elapsed nanoseconds over start/stop pairs.

    A timer bound to a :class:`TimingManager` hands its total to the manager
    when :meth:`finish` is called; a standalone timer is read directly.
    """

    def __init__(
        self,
        manager: TimingManager | None = None,
        handle_id: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.manager = manager
        self.handle_id = handle_id
        if clock is None:
            clock = manager.clock if manager is not None else get_monotonic_time
        self._clock = clock
        self._start_time: int | None = None
        self.accumulated_time = 0

    @property
    def running(self) -> bool:
        return self._start_time is not None

    def start(self) -> None:
        """Start measuring. Raises RuntimeError if already running."""
        if self._start_time is not None:
            raise RuntimeError("timer is already running")
        self._start_time = self._clock()

    def stop(self) -> None:
        """Stop measuring and add the elapsed time. Raises RuntimeError if not running."""
        if self._start_time is None:
            raise RuntimeError("timer is not running")
        self.accumulated_time += self._clock() - self._start_time
        self._start_time = None

    def ignore(self) -> None:
        """Discard the measurement and detach from the manager."""
        self._start_time = None
        self.accumulated_time = 0
        self.manager = None

    def finish(self) -> None:
        """Report the accumulated time to the bound manager, once."""
        manager = self.manager
        if manager is not None:
            self.manager = None
            manager.report(self)


class ScopedTimer(Timer):
    """A manager-bound timer that runs from creation until its ``with`` block ends."""

    def __init__(
        self, manager: TimingManager, name: str, nest: Timer | None = None
    ) -> None:
        base = (
            manager.nest(nest, name)
            if nest is not None
            else manager.get_or_create_timer(name)
        )
        super().__init__(manager, base.handle_id)
        self.start()

    def __enter__(self) -> ScopedTimer:
        return self

    def __exit__(self, *args) -> None:
        if self.running:
            self.stop()
        self.finish()


@dataclass
class _TimerInfo:
    name: str
    nesting: int | None = None
    accumulated_time: int = 0
    occurrence: int = 0


class TimingManager:
    """Registers named timers and periodically prints their average times."""

    def __init__(
        self,
        printing_interval: int = DEFAULT_PRINTING_INTERVAL,
        clock: Clock | None = None,
    ) -> None:
        if printing_interval <= 0:
            raise ValueError("printing interval must be positive")
        self.printing_interval = printing_interval
        self.clock: Clock = clock if clock is not None else get_monotonic_time
        self._mutex = HybridMutex()
        self._timers: list[_TimerInfo] = []
        self._events_reported = 0

    def _find_or_add(self, name: str) -> int:
        if len(name) >= MAX_LEN_OF_TIMER_NAME:
            raise ValueError(
                f"timer name must be shorter than {MAX_LEN_OF_TIMER_NAME} characters"
            )
        for handle, info in enumerate(self._timers):
            if info.name == name:
                return handle
        if len(self._timers) >= MAX_NUMBER_OF_TIMERS:
            raise RuntimeError(f"at most {MAX_NUMBER_OF_TIMERS} timers are supported")
        self._timers.append(_TimerInfo(name))
        return len(self._timers) - 1

    def get_or_create_timer(self, name: str) -> Timer:
        """Return a timer bound to the record with this name, creating it if needed."""
        with self._mutex:
            return Timer(self, self._find_or_add(name))

    def nest(self, timer: Timer, name: str) -> Timer:
        """Return a timer whose record is shown under ``timer``'s record."""
        if timer.manager is not self:
            raise ValueError("timer belongs to another manager")
        with self._mutex:
            handle = self._find_or_add(name)
            if handle == timer.handle_id:
                raise ValueError("a timer cannot be nested in itself")
            self._timers[handle].nesting = timer.handle_id
        return Timer(self, handle)

    def report(self, timer: Timer) -> None:
        """Add a timer's accumulated time to its record."""
        with self._mutex:
            handle = timer.handle_id
            if handle is None or not 0 <= handle < len(self._timers):
                raise ValueError(f"unknown timer handle {handle}")
            info = self._timers[handle]
            info.accumulated_time += timer.accumulated_time
            info.occurrence += 1
            self._events_reported += 1
            if self._events_reported % self.printing_interval == 0:
                output_raw(self._format_locked())

    def format_all(self) -> str:
        """Return the report of average times for every timer."""
        with self._mutex:
            return self._format_locked()

    def print_all(self) -> None:
        """Write the report with the raw output function."""
        output_raw(self.format_all())

    def close(self) -> None:
        """Print the final report if any timer was registered."""
        if self._timers:
            self.print_all()

    def _format_locked(self) -> str:
        out = ScopedString()
        out.append("%-15s %-15s\n", _AVG_HEADER, _NAME_HEADER)
        for handle, info in enumerate(self._timers):
            if info.nesting is None:
                self._format_timer(out, handle, 0)
        return out.data()

    def _format_timer(self, out: ScopedString, handle: int, indent: int) -> None:
        info = self._timers[handle]
        occurrence = info.occurrence
        integral = info.accumulated_time // occurrence if occurrence else 0
        fraction = (
            (info.accumulated_time % occurrence) * 10 // occurrence if occurrence else 0
        )
        out.append("%14ld.%ld(ns) %-11s", integral, fraction, " ")
        for _ in range(indent):
            out.append("%s", "  ")
        out.append("%s (%ld)\n", info.name, occurrence)
        for child, child_info in enumerate(self._timers):
            if child_info.nesting == handle:
                self._format_timer(out, child, indent + 1)