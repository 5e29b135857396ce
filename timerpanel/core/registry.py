"""Timer registry keeping named start/stop measurements for one request."""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from ..config.settings import Settings
from ..domain.timers import (
    AlreadyStopped,
    DuplicateKey,
    InvalidMode,
    ModeConflict,
    NoActiveTimer,
    Origin,
    Timer,
    TimerEntry,
    TimerMode,
    TimerNotFound,
    skip_origin_frames,
)
from .formatter import DEFAULT_PRECISION, Formatter, format_duration, make_formatter

log = logging.getLogger(__name__)

skip_origin_frames(__file__)

AUTO_KEY_PREFIX = "timer_"
AUTO_KEY_WIDTH = 3
SUM_AUTO_KEY = "sum"
STACK_AUTO_KEY = "stack"

ModeLike = Union[TimerMode, str]


def _coerce_mode(mode: ModeLike) -> TimerMode:
    if isinstance(mode, TimerMode):
        return mode
    try:
        return TimerMode(str(mode).lower())
    except ValueError as exc:
        raise InvalidMode(f"unknown timer mode: {mode!r}") from exc


class TimerRegistry:
    """Insertion-ordered collection of timers keyed by name.

    Default keys hold one timer and refuse a second ``start``. Sum keys hold
    one accumulator reopened on every ``start``. Stack keys hold a list of
    independent timers, one per ``start``, and ``stop`` closes all the open
    ones at once.

    The registry is not thread safe; use one instance per unit of work.
    """

    def __init__(
        self,
        formatter: Formatter = format_duration,
        *,
        clock: Callable[[], float] = time.perf_counter,
        precision: int = DEFAULT_PRECISION,
        capture_origin: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._formatter = formatter
        self._clock = clock
        self.precision = int(precision)
        self.capture_origin = bool(capture_origin)
        self._logger = logger or log
        self._timers: Dict[str, List[Timer]] = {}
        self._modes: Dict[str, TimerMode] = {}
        self._auto_counter = 0
        self._sequence = 0

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "TimerRegistry":
        """Build a registry whose display policy follows ``settings``."""

        fmt = settings.formatter
        kwargs.setdefault("capture_origin", settings.panel.capture_origin)
        kwargs.setdefault("precision", fmt.precision)
        return cls(make_formatter(fmt.elevated_ms, fmt.markup), **kwargs)

    # ------------------------------------------------------------------
    def start(
        self,
        key: Optional[str] = None,
        title: Optional[str] = None,
        mode: ModeLike = TimerMode.DEFAULT,
        *,
        origin: Optional[Origin] = None,
        capture_origin: Optional[bool] = None,
    ) -> str:
        """Start a timer and return its key (generated when ``key`` is None).

        ``capture_origin`` overrides the registry default for this call.
        """

        mode = _coerce_mode(mode)
        if key is None:
            key = self._auto_key(mode)
        key = str(key)

        existing_mode = self._modes.get(key)
        if existing_mode is not None and existing_mode is not mode:
            raise ModeConflict(f"timer '{key}' already used in {existing_mode.value} mode, not {mode.value}")

        if capture_origin is None:
            capture_origin = self.capture_origin
        if origin is None and capture_origin:
            origin = Origin.capture()

        timers = self._timers.get(key)
        if mode is TimerMode.DEFAULT and timers:
            raise DuplicateKey(f"timer '{key}' was already started")

        self._sequence += 1
        now = self._clock()

        if mode is TimerMode.SUM and timers:
            timer = timers[0]
            timer.reopen(now, self._sequence)
            if title is not None:
                timer.title = title
            if origin is not None:
                timer.origin = origin
            self._logger.debug("Timer %s reopened (%d occurrences)", key, timer.occurrences)
            return key

        timer = Timer(
            key=key,
            mode=mode,
            started_at=now,
            title=title,
            origin=origin,
            sequence=self._sequence,
        )
        if timers is None:
            self._timers[key] = [timer]
            self._modes[key] = mode
        else:
            timers.append(timer)
        self._logger.debug("Timer %s started (%s)", key, mode.value)
        return key

    def start_sum(self, key: Optional[str] = None, title: Optional[str] = None, *, origin: Optional[Origin] = None) -> str:
        return self.start(key, title, TimerMode.SUM, origin=origin)

    def start_stack(self, key: Optional[str] = None, title: Optional[str] = None, *, origin: Optional[Origin] = None) -> str:
        return self.start(key, title, TimerMode.STACK, origin=origin)

    # ------------------------------------------------------------------
    def stop(self, key: Optional[str] = None) -> str:
        """Stop ``key`` (or the last started running timer) and return the key."""

        if key is None:
            key = self.get_last_started()
            if key is None:
                raise NoActiveTimer("no running timer to stop")

        timers = self._timers.get(key)
        if not timers:
            raise TimerNotFound(f"timer '{key}' does not exist")

        now = self._clock()
        if self._modes[key] is TimerMode.STACK:
            open_timers = [t for t in timers if t.running]
            if not open_timers:
                raise AlreadyStopped(f"stack '{key}' has no running timers")
            for timer in open_timers:
                timer.finish(now)
            self._logger.debug("Stack %s stopped (%d entries)", key, len(open_timers))
            return key

        interval = timers[0].finish(now)
        self._logger.debug("Timer %s stopped after %.6fs", key, interval)
        return key

    def get_last_started(self) -> Optional[str]:
        """Key of the most recently started timer that is still running."""

        latest: Optional[Timer] = None
        for timers in self._timers.values():
            for timer in timers:
                if timer.running and (latest is None or timer.sequence > latest.sequence):
                    latest = timer
        return latest.key if latest is not None else None

    def stop_all(self) -> int:
        """Stop every running timer in insertion order; return how many stopped."""

        stopped = 0
        now = self._clock()
        for timers in self._timers.values():
            for timer in timers:
                if timer.running:
                    timer.finish(now)
                    stopped += 1
        if stopped:
            self._logger.info("Stopped %d unfinished timer(s) at report time", stopped)
        return stopped

    # ------------------------------------------------------------------
    @contextmanager
    def measure(
        self,
        key: Optional[str] = None,
        title: Optional[str] = None,
        mode: ModeLike = TimerMode.DEFAULT,
    ) -> Iterator[str]:
        """Time the body of a ``with`` block, closing only the timer it opened."""

        resolved = self.start(key, title, mode)
        timer = self._timers[resolved][-1]
        try:
            yield resolved
        finally:
            if timer.running:
                timer.finish(self._clock())

    # ------------------------------------------------------------------
    def snapshot(self) -> Tuple[TimerEntry, ...]:
        """Ordered copy of every key and its timers."""

        return tuple(
            TimerEntry(key, self._modes[key], tuple(replace(t) for t in timers))
            for key, timers in self._timers.items()
        )

    def get(self, key: str) -> Optional[TimerEntry]:
        timers = self._timers.get(key)
        if timers is None:
            return None
        return TimerEntry(key, self._modes[key], tuple(replace(t) for t in timers))

    def keys(self) -> List[str]:
        return list(self._timers)

    def total_time(self) -> float:
        return sum(t.accumulated_time for timers in self._timers.values() for t in timers)

    # ------------------------------------------------------------------
    @property
    def formatter(self) -> Formatter:
        return self._formatter

    def set_formatter(self, formatter: Formatter) -> "TimerRegistry":
        self._formatter = formatter
        return self

    def format(self, seconds: float) -> str:
        return self._formatter(seconds, self.precision)

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    def _auto_key(self, mode: TimerMode) -> str:
        if mode is TimerMode.SUM:
            return SUM_AUTO_KEY
        if mode is TimerMode.STACK:
            return STACK_AUTO_KEY
        while True:
            self._auto_counter += 1
            key = f"{AUTO_KEY_PREFIX}{self._auto_counter:0{AUTO_KEY_WIDTH}d}"
            if key not in self._timers:
                return key

    def __len__(self) -> int:
        return len(self._timers)

    def __contains__(self, key: object) -> bool:
        return key in self._timers

    def __iter__(self) -> Iterator[TimerEntry]:
        return iter(self.snapshot())


__all__ = ["TimerRegistry", "AUTO_KEY_PREFIX", "SUM_AUTO_KEY", "STACK_AUTO_KEY"]
