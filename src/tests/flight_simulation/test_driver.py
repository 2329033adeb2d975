"""Tests for the background clock driver and the planner client.

The planner is exercised through httpx.MockTransport, so no network is used.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from src.domains.flight_simulation.driver import ClockDriver
from src.domains.flight_simulation.persistence import InMemoryStorage, SimulationStatePersistence
from src.domains.flight_simulation.service import SimulationController
from src.infra.clients.planner_client import (
    PlannerClient,
    PlannerConfigurationError,
    PlannerRequestError,
)


T0 = datetime(2025, 1, 1, 8, 0, 0)


class _FakeMonotonic:
    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


def _planner(handler) -> PlannerClient:
    return PlannerClient("http://planner.test", transport=httpx.MockTransport(handler))


def test_step_ticks_by_measured_wall_clock() -> None:
    controller = SimulationController()
    controller.start(T0, speed_multiplier=60.0)
    monotonic = _FakeMonotonic()
    driver = ClockDriver(controller, monotonic=monotonic)

    async def scenario() -> None:
        await driver.step()  # 首次tick，经过时间为0
        monotonic.value = 2.0
        await driver.step()

    asyncio.run(scenario())
    assert controller.clock.simulated_now == T0 + timedelta(minutes=2)


def test_step_calls_planner_and_saves_state() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    controller = SimulationController()
    controller.start(T0, speed_multiplier=1.0)
    persistence = SimulationStatePersistence(InMemoryStorage(), key="test:driver")
    monotonic = _FakeMonotonic()
    driver = ClockDriver(controller, _planner(handler), persistence, monotonic=monotonic)

    async def scenario() -> tuple[bool, bool, str | None]:
        first = await driver.step()
        monotonic.value = 8 * 60.0  # 8分钟真实时间 = 8分钟仿真时间
        second = await driver.step()
        return first, second, await persistence.load()

    first, second, blob = asyncio.run(scenario())

    assert first is False
    assert second is True
    assert driver.trigger_count == 1
    assert len(requests) == 1
    assert requests[0].url.path == "/api/algoritmo/diario/ejecutar"
    assert blob is not None

    restored = SimulationController()
    restored.restore_state(blob)
    assert restored.window.last_trigger_time == T0 + timedelta(minutes=8)


def test_planner_failure_does_not_stop_driver() -> None:
    controller = SimulationController()
    controller.start(T0, speed_multiplier=1.0)
    monotonic = _FakeMonotonic()
    driver = ClockDriver(
        controller,
        _planner(lambda request: httpx.Response(500)),
        monotonic=monotonic,
    )

    async def scenario() -> bool:
        await driver.step()
        monotonic.value = 600.0
        return await driver.step()

    assert asyncio.run(scenario()) is True
    # 窗口已经前移，下次不会立即重复触发
    assert controller.poll_trigger() is False


def test_start_and_stop_background_task() -> None:
    controller = SimulationController()
    driver = ClockDriver(controller, interval_s=60.0)

    async def scenario() -> tuple[bool, bool]:
        await driver.start()
        started = driver.is_running
        await driver.stop()
        return started, driver.is_running

    assert asyncio.run(scenario()) == (True, False)


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ClockDriver(SimulationController(), interval_s=0)


def test_planner_client_empty_body() -> None:
    client = _planner(lambda request: httpx.Response(204))
    assert asyncio.run(client.request_reoptimization()) == {}


def test_planner_client_posts_empty_json() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = request.content
        return httpx.Response(200, json={"assigned": 3})

    result = asyncio.run(_planner(handler).request_reoptimization())

    assert result == {"assigned": 3}
    assert seen["method"] == "POST"
    assert seen["body"] == b"{}"


def test_planner_client_http_error() -> None:
    client = _planner(lambda request: httpx.Response(503, text="busy"))

    with pytest.raises(PlannerRequestError):
        asyncio.run(client.request_reoptimization())


def test_planner_client_requires_base_url() -> None:
    with pytest.raises(PlannerConfigurationError):
        PlannerClient("")


class _FlakyController:
    """首次tick抛出异常，之后正常"""

    def __init__(self) -> None:
        self.tick_calls = 0

    def tick(self, elapsed_ms: float) -> None:
        self.tick_calls += 1
        if self.tick_calls == 1:
            raise OverflowError("date value out of range")

    def poll_trigger(self) -> bool:
        return False


def test_failed_step_does_not_stop_background_loop() -> None:
    controller = _FlakyController()
    driver = ClockDriver(controller, interval_s=0.001)

    async def scenario() -> bool:
        await driver.start()
        for _ in range(500):
            await asyncio.sleep(0.005)
            if controller.tick_calls >= 3:
                break
        running = driver.is_running
        await driver.stop()
        return running

    assert asyncio.run(scenario()) is True
    assert controller.tick_calls >= 3
