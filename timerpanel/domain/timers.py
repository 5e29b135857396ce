"""Timer records, modes and the errors raised by the registry."""
from __future__ import annotations

import contextlib
import inspect
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

_SKIPPED_FILES = {os.path.abspath(__file__), os.path.abspath(contextlib.__file__)}


def skip_origin_frames(path: str) -> None:
    """Treat frames from ``path`` as part of the timer API when capturing origins."""

    _SKIPPED_FILES.add(os.path.abspath(path))


class TimerMode(str, Enum):
    """How repeated ``start`` calls on one key are merged."""

    DEFAULT = "default"
    SUM = "sum"
    STACK = "stack"


class TimerError(RuntimeError):
    """Base exception for timer bookkeeping misuse."""


class InvalidMode(TimerError, ValueError):
    """Raised when ``start`` receives an unknown mode."""


class ModeConflict(TimerError):
    """Raised when a key is reused with a different mode than its first use."""


class DuplicateKey(TimerError):
    """Raised when a default-mode key is started a second time."""


class TimerNotFound(TimerError, LookupError):
    """Raised when ``stop`` names a key that was never started."""


class NoActiveTimer(TimerError):
    """Raised when ``stop`` without a key finds nothing running."""


class AlreadyStopped(TimerError):
    """Raised when a timer is stopped twice."""


@dataclass(frozen=True)
class Origin:
    """Call site that started a timer."""

    filename: str
    lineno: int
    function: str = ""

    @property
    def label(self) -> str:
        return f"{os.path.basename(self.filename)}:{self.lineno}"

    @classmethod
    def capture(cls) -> Optional["Origin"]:
        """Return the first frame on the stack outside the timer API modules."""

        frame = inspect.currentframe()
        try:
            while frame is not None:
                filename = os.path.abspath(frame.f_code.co_filename)
                if filename not in _SKIPPED_FILES and not frame.f_code.co_filename.startswith("<frozen"):
                    return cls(filename, frame.f_lineno, frame.f_code.co_name)
                frame = frame.f_back
            return None
        finally:
            del frame


@dataclass
class Timer:
    """A single measured interval, or an accumulator in sum mode."""

    key: str
    mode: TimerMode
    started_at: float
    title: Optional[str] = None
    stopped_at: Optional[float] = None
    accumulated_time: float = 0.0
    occurrences: int = 1
    origin: Optional[Origin] = None
    sequence: int = 0

    @property
    def running(self) -> bool:
        return self.stopped_at is None

    @property
    def label(self) -> str:
        return self.title or self.key

    def elapsed(self, now: Optional[float] = None) -> float:
        """Accumulated time, including the open interval when ``now`` is given."""

        if self.running and now is not None:
            return self.accumulated_time + max(0.0, now - self.started_at)
        return self.accumulated_time

    # ------------------------------------------------------------------
    def reopen(self, now: float, sequence: int) -> None:
        self.started_at = now
        self.stopped_at = None
        self.occurrences += 1
        self.sequence = sequence

    def finish(self, now: float) -> float:
        if not self.running:
            raise AlreadyStopped(f"timer '{self.key}' already stopped")
        self.stopped_at = now
        interval = now - self.started_at
        if self.mode is TimerMode.SUM:
            self.accumulated_time += interval
        else:
            self.accumulated_time = interval
        return interval


@dataclass(frozen=True)
class TimerEntry:
    """Read-only view of one registry key and its timers."""

    key: str
    mode: TimerMode
    timers: Tuple[Timer, ...]

    @property
    def is_stack(self) -> bool:
        return self.mode is TimerMode.STACK

    @property
    def timer(self) -> Timer:
        """The single timer of a default or sum key (the last one for stacks)."""

        return self.timers[-1]

    @property
    def title(self) -> Optional[str]:
        for timer in self.timers:
            if timer.title:
                return timer.title
        return None

    @property
    def total(self) -> float:
        return sum(t.accumulated_time for t in self.timers)

    @property
    def occurrences(self) -> int:
        return sum(t.occurrences for t in self.timers)

    @property
    def running(self) -> bool:
        return any(t.running for t in self.timers)


__all__ = [
    "AlreadyStopped",
    "DuplicateKey",
    "InvalidMode",
    "ModeConflict",
    "NoActiveTimer",
    "Origin",
    "Timer",
    "TimerEntry",
    "TimerError",
    "TimerMode",
    "TimerNotFound",
    "skip_origin_frames",
]
