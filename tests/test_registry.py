import time

import pytest

from timerpanel.config.settings import Settings
from timerpanel.core.registry import TimerRegistry
from timerpanel.domain.timers import (
    AlreadyStopped,
    DuplicateKey,
    InvalidMode,
    ModeConflict,
    NoActiveTimer,
    Origin,
    TimerError,
    TimerMode,
    TimerNotFound,
)


def test_default_timer_measures_interval(registry, clock):
    assert registry.start("a", "First") == "a"
    clock.advance(0.25)
    assert registry.stop("a") == "a"

    entry = registry.get("a")
    timer = entry.timer
    assert entry.mode is TimerMode.DEFAULT
    assert timer.title == "First"
    assert timer.started_at == 100.0
    assert timer.stopped_at == pytest.approx(100.25)
    assert timer.accumulated_time == pytest.approx(timer.stopped_at - timer.started_at)
    assert timer.occurrences == 1


def test_real_clock_sleep_is_measured():
    registry = TimerRegistry()
    registry.start("a")
    time.sleep(0.05)
    registry.stop("a")
    assert 0.045 <= registry.get("a").timer.accumulated_time <= 0.070


def test_auto_keys_are_unique_and_increasing(registry):
    keys = [registry.start() for _ in range(3)]
    assert keys == ["timer_001", "timer_002", "timer_003"]


def test_auto_keys_skip_explicitly_used_names(registry):
    registry.start("timer_001")
    assert registry.start() == "timer_002"


def test_auto_keys_for_sum_and_stack(registry):
    assert registry.start_sum() == "sum"
    assert registry.start_stack() == "stack"


def test_invalid_mode_is_rejected(registry):
    with pytest.raises(InvalidMode):
        registry.start("a", mode="bogus")
    assert "a" not in registry


def test_mode_accepts_string_values(registry):
    registry.start("s", mode="SUM")
    assert registry.get("s").mode is TimerMode.SUM


@pytest.mark.parametrize(
    "first, second",
    [
        (TimerMode.DEFAULT, TimerMode.STACK),
        (TimerMode.STACK, TimerMode.DEFAULT),
        (TimerMode.SUM, TimerMode.STACK),
        (TimerMode.DEFAULT, TimerMode.SUM),
    ],
)
def test_mode_conflict(registry, first, second):
    registry.start("k", mode=first)
    registry.stop("k")
    with pytest.raises(ModeConflict):
        registry.start("k", mode=second)


def test_default_restart_raises_duplicate_key(registry):
    registry.start("x")
    with pytest.raises(DuplicateKey):
        registry.start("x")
    registry.stop("x")
    with pytest.raises(DuplicateKey):
        registry.start("x")


def test_sum_accumulates_cycles(registry, clock):
    registry.start_sum("s", "Loop body")
    clock.advance(0.010)
    registry.stop("s")
    clock.advance(5.0)
    registry.start_sum("s")
    clock.advance(0.010)
    registry.stop("s")

    timer = registry.get("s").timer
    assert timer.accumulated_time == pytest.approx(0.020)
    assert timer.occurrences == 2
    assert timer.title == "Loop body"
    assert not timer.running


def test_sum_with_real_sleeps():
    registry = TimerRegistry()
    for _ in range(2):
        registry.start_sum("s")
        time.sleep(0.01)
        registry.stop("s")
    timer = registry.get("s").timer
    assert timer.occurrences == 2
    assert 0.018 <= timer.accumulated_time <= 0.060


def test_sum_restart_while_running_reopens_the_timer(registry, clock):
    registry.start_sum("s")
    clock.advance(1.0)
    registry.start_sum("s")
    assert registry.get("s").timer.started_at == pytest.approx(101.0)
    clock.advance(0.25)
    registry.stop("s")

    timer = registry.get("s").timer
    assert timer.occurrences == 2
    assert timer.accumulated_time == pytest.approx(0.25)
    assert timer.stopped_at == pytest.approx(101.25)


def test_stack_creates_independent_entries(registry, clock):
    registry.start_stack("st", "outer")
    clock.advance(1.0)
    registry.start_stack("st", "inner")
    clock.advance(0.5)
    assert registry.stop("st") == "st"

    entries = registry.snapshot()
    assert len(entries) == 1
    entry = entries[0]
    assert entry.key == "st"
    assert entry.is_stack
    assert len(entry.timers) == 2
    assert all(t.stopped_at is not None for t in entry.timers)
    assert [t.accumulated_time for t in entry.timers] == [pytest.approx(1.5), pytest.approx(0.5)]


def test_stack_stop_only_closes_open_entries(registry, clock):
    registry.start_stack("st")
    clock.advance(1.0)
    registry.stop("st")
    registry.start_stack("st")
    clock.advance(2.0)
    registry.stop("st")

    first, second = registry.get("st").timers
    assert first.accumulated_time == pytest.approx(1.0)
    assert second.accumulated_time == pytest.approx(2.0)
    with pytest.raises(AlreadyStopped):
        registry.stop("st")


def test_stop_missing_key(registry):
    with pytest.raises(TimerNotFound):
        registry.stop("missing")


def test_stop_twice(registry):
    registry.start("x")
    registry.stop("x")
    with pytest.raises(AlreadyStopped):
        registry.stop("x")


def test_stop_without_key_uses_last_started(registry):
    registry.start("outer")
    registry.start("inner")
    assert registry.stop() == "inner"
    assert registry.stop() == "outer"
    with pytest.raises(NoActiveTimer):
        registry.stop()


def test_stop_without_key_on_empty_registry(registry):
    with pytest.raises(NoActiveTimer):
        registry.stop()


def test_get_last_started(registry):
    assert registry.get_last_started() is None
    registry.start("a")
    registry.start_stack("st")
    assert registry.get_last_started() == "st"
    registry.stop("st")
    assert registry.get_last_started() == "a"
    registry.stop("a")
    assert registry.get_last_started() is None


def test_get_last_started_follows_reopened_sum(registry):
    registry.start_sum("s")
    registry.stop("s")
    registry.start("a")
    registry.start_sum("s")
    assert registry.get_last_started() == "s"


def test_stop_all_is_idempotent(registry, clock):
    registry.start("a")
    registry.start_sum("s")
    registry.start_stack("st")
    registry.start_stack("st")
    clock.advance(1.0)

    assert registry.stop_all() == 4
    before = registry.snapshot()
    clock.advance(1.0)
    assert registry.stop_all() == 0
    assert registry.snapshot() == before
    assert registry.get_last_started() is None


def test_snapshot_preserves_insertion_order(registry):
    for key in ("c", "a", "b"):
        registry.start(key)
    registry.start_sum("s")
    assert [entry.key for entry in registry.snapshot()] == ["c", "a", "b", "s"]
    assert registry.keys() == ["c", "a", "b", "s"]


def test_snapshot_is_not_affected_by_later_changes(registry, clock):
    registry.start("a")
    snapshot = registry.snapshot()
    clock.advance(1.0)
    registry.stop("a")
    assert snapshot[0].timer.running
    assert snapshot[0].timer.accumulated_time == 0.0
    assert registry.get("a").timer.accumulated_time == pytest.approx(1.0)


def test_total_time(registry, clock):
    registry.start("a")
    clock.advance(1.0)
    registry.stop("a")
    registry.start_stack("st")
    registry.start_stack("st")
    clock.advance(0.5)
    registry.stop("st")
    assert registry.total_time() == pytest.approx(2.0)


def test_measure_closes_only_its_own_stack_entry(registry, clock):
    registry.start_stack("st")
    with registry.measure("st", mode=TimerMode.STACK) as key:
        clock.advance(1.0)
    assert key == "st"
    outer, inner = registry.get("st").timers
    assert outer.running
    assert not inner.running
    assert inner.accumulated_time == pytest.approx(1.0)


def test_measure_stops_on_error(registry, clock):
    with pytest.raises(ZeroDivisionError):
        with registry.measure("boom"):
            clock.advance(0.5)
            1 / 0
    timer = registry.get("boom").timer
    assert not timer.running
    assert timer.accumulated_time == pytest.approx(0.5)


def test_explicit_origin_is_kept(registry):
    origin = Origin("app/views.py", 42, "index")
    registry.start("a", origin=origin)
    assert registry.get("a").timer.origin == origin
    assert origin.label == "views.py:42"


def test_origin_capture_points_at_caller(clock):
    registry = TimerRegistry(clock=clock, capture_origin=True)
    registry.start("a")
    origin = registry.get("a").timer.origin
    assert origin is not None
    assert origin.filename == __file__
    assert origin.function == "test_origin_capture_points_at_caller"


def test_origin_capture_through_measure(clock):
    registry = TimerRegistry(clock=clock, capture_origin=True)
    with registry.measure("a"):
        pass
    assert registry.get("a").timer.origin.filename == __file__


def test_errors_share_a_base_class():
    for exc in (InvalidMode, ModeConflict, DuplicateKey, TimerNotFound, NoActiveTimer, AlreadyStopped):
        assert issubclass(exc, TimerError)
        assert issubclass(exc, RuntimeError)


def test_custom_formatter_is_used(registry):
    calls = []

    def formatter(seconds, precision):
        calls.append((seconds, precision))
        return "fmt"

    registry.set_formatter(formatter)
    assert registry.format(1.5) == "fmt"
    assert calls == [(1.5, 4)]


def test_capture_origin_can_be_disabled_per_call(clock):
    registry = TimerRegistry(clock=clock, capture_origin=True)
    registry.start("quiet", capture_origin=False)
    registry.start("loud")
    assert registry.get("quiet").timer.origin is None
    assert registry.get("loud").timer.origin.filename == __file__


def test_from_settings_accepts_precision_override():
    settings = Settings()
    settings.formatter.precision = 1
    assert TimerRegistry.from_settings(settings).precision == 1
    registry = TimerRegistry.from_settings(settings, precision=3, capture_origin=False)
    assert registry.precision == 3
    assert registry.capture_origin is False
