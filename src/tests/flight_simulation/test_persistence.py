"""Unit tests for state serialization and storage-backed recovery."""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta

import pytest
from redis.exceptions import RedisError

from src.core.exceptions import PersistenceError
from src.domains.flight_simulation.persistence import (
    InMemoryStorage,
    PersistenceBridge,
    RedisStorage,
    SimulationStatePersistence,
)
from src.domains.flight_simulation.schemas import ClockState
from src.domains.flight_simulation.service import SimulationController


T0 = datetime(2025, 1, 1, 8, 0, 0)


def _running_controller() -> SimulationController:
    controller = SimulationController()
    controller.start(T0, speed_multiplier=60.0)
    controller.tick(90_000)  # 90分钟
    controller.poll_trigger()
    return controller


def test_export_and_restore_round_trip() -> None:
    source = _running_controller()
    blob = source.export_state()

    target = SimulationController()
    target.restore_state(blob)

    assert target.clock.state is ClockState.RUNNING
    assert target.clock.simulated_now == T0 + timedelta(minutes=90)
    assert target.clock.simulation_start == T0
    assert target.clock.speed_multiplier == 60.0
    assert target.window.last_trigger_time == source.window.last_trigger_time
    assert target.window.next_trigger_time == source.window.next_trigger_time


def test_paused_state_survives_round_trip() -> None:
    source = _running_controller()
    source.pause()

    target = SimulationController()
    target.restore_state(source.export_state())

    assert target.clock.state is ClockState.PAUSED


def test_stopped_state_round_trip() -> None:
    target = SimulationController()
    target.restore_state(SimulationController().export_state())

    assert target.clock.state is ClockState.STOPPED
    assert target.window.next_trigger_time is None


def test_serialized_record_uses_absolute_timestamps() -> None:
    record = json.loads(_running_controller().export_state())

    assert set(record) == {
        "simulated_now",
        "running",
        "speed_multiplier",
        "last_trigger_time",
        "next_trigger_time",
        "simulation_start",
    }
    assert datetime.fromisoformat(record["simulated_now"]) == T0 + timedelta(minutes=90)


@pytest.mark.parametrize(
    "blob",
    [
        "not json",
        json.dumps({"running": True}),
        json.dumps({"simulated_now": "2025-01-01T08:00:00", "speed_multiplier": -5}),
        json.dumps({
            "simulated_now": "2025-01-01T08:00:00",
            "running": True,
            "last_trigger_time": "2025-01-01T09:00:00",
            "next_trigger_time": "2025-01-01T09:08:00",
        }),
        json.dumps({"running": False, "last_trigger_time": "2025-01-01T08:00:00"}),
    ],
)
def test_corrupt_record_leaves_clock_stopped(blob: str) -> None:
    controller = _running_controller()

    with pytest.raises(PersistenceError):
        controller.restore_state(blob)

    assert controller.clock.state is ClockState.STOPPED
    assert controller.window.next_trigger_time is None


def test_bridge_rejects_next_without_last() -> None:
    blob = json.dumps({
        "simulated_now": "2025-01-01T08:00:00",
        "running": True,
        "next_trigger_time": "2025-01-01T08:08:00",
    })
    with pytest.raises(PersistenceError):
        PersistenceBridge.restore(blob)


def test_save_and_recover_through_storage() -> None:
    persistence = SimulationStatePersistence(InMemoryStorage(), key="test:clock")
    source = _running_controller()

    async def scenario() -> tuple[bool, SimulationController]:
        await source.save(persistence)
        target = SimulationController()
        recovered = await target.recover(persistence)
        return recovered, target

    recovered, target = asyncio.run(scenario())

    assert recovered is True
    assert target.clock.simulated_now == source.clock.simulated_now
    assert target.window.snapshot() == source.window.snapshot()


def test_recover_without_record_returns_false() -> None:
    persistence = SimulationStatePersistence(InMemoryStorage(), key="test:empty")
    controller = SimulationController()

    assert asyncio.run(controller.recover(persistence)) is False
    assert controller.clock.state is ClockState.STOPPED


def test_clear_removes_record() -> None:
    persistence = SimulationStatePersistence(InMemoryStorage(), key="test:clear")

    async def scenario():
        await _running_controller().save(persistence)
        await persistence.clear()
        return await persistence.load()

    assert asyncio.run(scenario()) is None


class _BrokenPipeline:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def set(self, key, value):
        return self

    async def execute(self):
        raise RedisError("connection refused")


class _BrokenRedis:
    async def get(self, key):
        raise RedisError("connection refused")

    async def delete(self, key):
        raise RedisError("connection refused")

    def pipeline(self, transaction=True):
        return _BrokenPipeline()


def test_redis_failures_surface_as_persistence_error() -> None:
    persistence = SimulationStatePersistence(RedisStorage(_BrokenRedis()), key="test:broken")
    controller = _running_controller()

    with pytest.raises(PersistenceError):
        asyncio.run(controller.recover(persistence))
    assert controller.clock.state is ClockState.STOPPED

    with pytest.raises(PersistenceError):
        asyncio.run(persistence.clear())


def test_redis_write_failure_surfaces_as_persistence_error() -> None:
    persistence = SimulationStatePersistence(RedisStorage(_BrokenRedis()), key="test:broken")
    controller = _running_controller()

    with pytest.raises(PersistenceError):
        asyncio.run(controller.save(persistence))
    # 写入失败不影响时钟
    assert controller.clock.state is ClockState.RUNNING


@pytest.mark.parametrize("running", [True, False])
def test_started_record_without_window_is_rejected(running: bool) -> None:
    blob = json.dumps({"simulated_now": "2025-01-01T08:00:00", "running": running})

    with pytest.raises(PersistenceError):
        PersistenceBridge.restore(blob)


def test_aware_timestamps_in_record_are_normalized() -> None:
    blob = json.dumps({
        "simulated_now": "2025-01-01T16:30:00+08:00",
        "running": True,
        "last_trigger_time": "2025-01-01T08:20:00Z",
        "next_trigger_time": "2025-01-01T08:28:00Z",
    })

    controller = SimulationController()
    controller.restore_state(blob)

    assert controller.clock.simulated_now == T0 + timedelta(minutes=30)
    assert controller.window.last_trigger_time == T0 + timedelta(minutes=20)
