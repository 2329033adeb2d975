"""
时钟驱动

外部周期源：后台任务按实际经过的真实时间调用 controller.tick()，
到期时调用外部规划器，并在每次tick后保存状态。
时钟本身不依赖本模块，测试可直接传入合成的 elapsed_ms。
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from src.core.config import settings
from src.core.exceptions import PersistenceError
from src.infra.clients.planner_client import PlannerClient, PlannerError
from .persistence import SimulationStatePersistence, get_state_persistence
from .service import SimulationController, get_simulation_controller

logger = logging.getLogger(__name__)


class ClockDriver:
    """
    仿真时钟驱动器

    使用示例:
    ```python
    driver = ClockDriver(controller, planner, persistence, interval_s=1.0)
    await driver.start()
    ...
    await driver.stop()
    ```
    """

    def __init__(
        self,
        controller: SimulationController,
        planner: Optional[PlannerClient] = None,
        persistence: Optional[SimulationStatePersistence] = None,
        interval_s: float = 1.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s 必须为正数")
        self._controller = controller
        self._planner = planner
        self._persistence = persistence
        self._interval_s = interval_s
        self._monotonic = monotonic

        self._task: Optional[asyncio.Task] = None
        self._last_tick: Optional[float] = None
        self.trigger_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        logger.info(f"启动时钟驱动: interval={self._interval_s}s")
        self._last_tick = self._monotonic()
        self._task = asyncio.create_task(self._loop(), name="flight-simulation-clock")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("时钟驱动已停止")

    async def step(self) -> bool:
        """
        执行一次tick

        Returns:
            本次是否触发了重优化
        """
        now = self._monotonic()
        last = self._last_tick if self._last_tick is not None else now
        self._last_tick = now

        elapsed_ms = max(0.0, (now - last) * 1000.0)
        self._controller.tick(elapsed_ms)

        triggered = self._controller.poll_trigger()
        if triggered:
            self.trigger_count += 1
            await self._request_reoptimization()

        if self._persistence is not None:
            try:
                await self._controller.save(self._persistence)
            except PersistenceError as e:
                logger.warning(f"仿真状态保存失败: {e.message}")

        return triggered

    async def _request_reoptimization(self) -> None:
        if self._planner is None:
            logger.debug("未配置规划器，跳过重优化请求")
            return
        try:
            await self._planner.request_reoptimization()
        except PlannerError as e:
            logger.error(f"重优化请求失败: {e}")

    async def _loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval_s)
                try:
                    await self.step()
                except Exception as e:
                    # 单次tick失败不终止驱动
                    logger.error(f"时钟驱动tick异常: error={e}", exc_info=True)
        except asyncio.CancelledError:
            logger.debug("时钟驱动任务被取消")
            raise


# 全局单例
_driver: Optional[ClockDriver] = None


async def get_clock_driver() -> ClockDriver:
    """获取时钟驱动单例（按配置创建规划器客户端与持久化）"""
    global _driver
    if _driver is None:
        _driver = ClockDriver(
            controller=get_simulation_controller(),
            planner=PlannerClient(
                settings.planner_base_url,
                path=settings.planner_path,
                timeout=settings.planner_timeout_s,
            ),
            persistence=await get_state_persistence(),
            interval_s=settings.driver_interval_s,
        )
    return _driver


async def shutdown_clock_driver() -> None:
    """停止时钟驱动"""
    global _driver
    if _driver:
        await _driver.stop()
        _driver = None
