"""Unit tests for SimulationClock.

Covers the state machine, tick arithmetic and snapshot round trips.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.core.exceptions import ConflictError, ValidationError
from src.domains.flight_simulation.clock import SimulationClock, format_elapsed
from src.domains.flight_simulation.schemas import ClockState


T0 = datetime(2025, 1, 1, 8, 0, 0)


def _running_clock(speed: float = 60.0) -> SimulationClock:
    clock = SimulationClock()
    clock.start(T0, speed_multiplier=speed)
    return clock


def test_tick_scales_wall_clock_by_speed() -> None:
    """Two real seconds at 60x should move simulated time by two minutes."""

    clock = _running_clock(60.0)
    clock.tick(2000)

    assert clock.simulated_now == T0 + timedelta(minutes=2)
    assert clock.elapsed_simulated_seconds == 120.0


def test_tick_is_additive() -> None:
    """Splitting elapsed time across ticks gives the same result as one tick."""

    split = _running_clock(60.0)
    split.tick(1500)
    split.tick(500)

    whole = _running_clock(60.0)
    whole.tick(2000)

    assert split.simulated_now == whole.simulated_now


def test_paused_clock_ignores_ticks() -> None:
    clock = _running_clock()
    clock.pause()
    clock.tick(10_000)

    assert clock.state is ClockState.PAUSED
    assert clock.simulated_now == T0

    clock.resume()
    clock.tick(1000)
    assert clock.simulated_now == T0 + timedelta(minutes=1)


def test_stop_is_idempotent_and_clears_time() -> None:
    clock = _running_clock()
    clock.stop()
    clock.stop()

    assert clock.state is ClockState.STOPPED
    assert clock.simulated_now is None
    assert clock.simulation_start is None
    assert clock.elapsed_simulated_seconds == 0.0


def test_stopped_clock_ignores_ticks() -> None:
    clock = SimulationClock()
    assert clock.tick(1000) is None
    assert clock.state is ClockState.STOPPED


def test_start_twice_is_rejected() -> None:
    clock = _running_clock()

    with pytest.raises(ConflictError) as exc_info:
        clock.start(T0)
    assert exc_info.value.error_code == "SC4001"


def test_set_speed_requires_started_clock() -> None:
    clock = SimulationClock()

    with pytest.raises(ConflictError):
        clock.set_speed(60)


@pytest.mark.parametrize("speed", [0, -1, float("inf"), float("nan")])
def test_invalid_speed_is_rejected(speed: float) -> None:
    clock = _running_clock()

    with pytest.raises(ValidationError):
        clock.set_speed(speed)
    # 原速度保持不变
    assert clock.speed_multiplier == 60.0


def test_speed_change_applies_to_later_ticks_only() -> None:
    clock = _running_clock(60.0)
    clock.tick(1000)
    clock.set_speed(3600)
    clock.tick(1000)

    assert clock.simulated_now == T0 + timedelta(minutes=1, hours=1)


@pytest.mark.parametrize("elapsed", [-1, float("nan"), float("inf")])
def test_invalid_tick_is_rejected(elapsed: float) -> None:
    clock = _running_clock()

    with pytest.raises(ValidationError):
        clock.tick(elapsed)
    assert clock.simulated_now == T0


def test_set_time_moves_forward_only() -> None:
    clock = _running_clock()
    target = T0 + timedelta(hours=3)

    assert clock.set_time(target) == target
    with pytest.raises(ValidationError):
        clock.set_time(T0)
    assert clock.simulated_now == target


def test_set_time_on_stopped_clock_is_rejected() -> None:
    with pytest.raises(ConflictError):
        SimulationClock().set_time(T0)


def test_advance_time_only_while_running() -> None:
    clock = _running_clock()
    clock.advance_time(timedelta(minutes=5))
    assert clock.simulated_now == T0 + timedelta(minutes=5)

    clock.pause()
    clock.advance_time(timedelta(minutes=5))
    assert clock.simulated_now == T0 + timedelta(minutes=5)

    with pytest.raises(ValidationError):
        clock.advance_time(timedelta(seconds=-1))


def test_snapshot_round_trip_keeps_absolute_time() -> None:
    clock = _running_clock(3600.0)
    clock.tick(2500)
    clock.pause()

    restored = SimulationClock()
    restored.load_snapshot(clock.snapshot())

    assert restored.state is ClockState.PAUSED
    assert restored.simulated_now == clock.simulated_now
    assert restored.simulation_start == T0
    assert restored.speed_multiplier == 3600.0


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0, "00:00:00"),
        (3661, "01:01:01"),
        (90061, "1d 01:01:01"),
        (-5, "00:00:00"),
    ],
)
def test_format_elapsed(seconds: float, expected: str) -> None:
    assert format_elapsed(seconds) == expected


def test_sub_microsecond_ticks_accumulate_exactly() -> None:
    """Many tiny ticks equal one tick of the combined duration."""

    speed = 2 ** -10  # 每tick 0.5ms * speed = 0.48828125 微秒
    many = _running_clock(speed)
    for _ in range(1024):
        many.tick(0.5)

    once = _running_clock(speed)
    once.tick(512)

    assert once.simulated_now == T0 + timedelta(microseconds=500)
    assert many.simulated_now == once.simulated_now


def test_set_time_accepts_aware_values() -> None:
    clock = _running_clock()
    clock.set_time(datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc))

    assert clock.simulated_now == T0 + timedelta(hours=1)
    with pytest.raises(ValidationError):
        clock.set_time(datetime(2025, 1, 1, 15, 0, tzinfo=timezone(timedelta(hours=8))))
