"""
飞行仿真核心服务

SimulationController - 持有仿真时钟与重优化窗口的唯一协调者，
所有状态修改都经由其动作方法完成
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from src.core.exceptions import ConflictError, PersistenceError, ValidationError
from .clock import SimulationClock
from .constants import DEFAULT_ADVANCE_MINUTES
from .kinematics import KinematicAdvancer
from .persistence import PersistenceBridge, SimulationStatePersistence
from .schemas import (
    ClockState,
    ClockStatusResponse,
    FlightKinematicState,
    FlightPositionSnapshot,
    FreeRoamingEntityState,
    OrderArrivalResponse,
    TimeUnit,
)
from .tracker import snapshot_flights
from .window import WindowScheduler

logger = logging.getLogger(__name__)


def resolve_speed(
    speed_multiplier: Optional[float] = None,
    time_unit: Optional[TimeUnit] = None,
) -> float:
    """速度倍率与速度预设二选一，都缺省时为实时"""
    if speed_multiplier is not None and time_unit is not None:
        raise ValidationError(message="speed_multiplier 与 time_unit 不能同时指定")
    if time_unit is not None:
        return time_unit.speed_multiplier
    if speed_multiplier is not None:
        return speed_multiplier
    return 1.0


class SimulationController:
    """
    仿真控制器

    核心功能：
    1. 时钟生命周期（启动/暂停/恢复/停止/调速）
    2. 时间推进（tick/set_time/advance_time）
    3. 重优化窗口（订单到达、触发判定）
    4. 航班位置与自由实体推算
    5. 状态导出与恢复

    使用示例:
    ```python
    controller = SimulationController()
    controller.start(datetime(2025, 1, 1), speed_multiplier=60)

    controller.tick(2000)
    if controller.poll_trigger():
        await planner.request_reoptimization()

    controller.on_order_arrival(order_time)
    positions = controller.flight_positions(flights)

    controller.stop()
    ```
    """

    def __init__(
        self,
        clock: Optional[SimulationClock] = None,
        window: Optional[WindowScheduler] = None,
        advancer: Optional[KinematicAdvancer] = None,
    ) -> None:
        self._clock = clock or SimulationClock()
        self._window = window or WindowScheduler(self._clock)
        self._advancer = advancer or KinematicAdvancer()

    @property
    def clock(self) -> SimulationClock:
        return self._clock

    @property
    def window(self) -> WindowScheduler:
        return self._window

    # =========================================================================
    # 时钟生命周期
    # =========================================================================

    def start(
        self,
        initial_time: datetime,
        speed_multiplier: Optional[float] = None,
        time_unit: Optional[TimeUnit] = None,
    ) -> None:
        """启动时钟并播种首个重优化窗口"""
        speed = resolve_speed(speed_multiplier, time_unit)
        self._clock.start(initial_time, speed)
        self._window.seed(initial_time)

    def pause(self) -> None:
        self._require_started("SC4004", "暂停")
        self._clock.pause()

    def resume(self) -> None:
        self._require_started("SC4005", "恢复")
        self._clock.resume()

    def stop(self) -> None:
        """停止时钟并清空窗口，幂等"""
        self._clock.stop()
        self._window.clear()

    def set_speed(
        self,
        speed_multiplier: Optional[float] = None,
        time_unit: Optional[TimeUnit] = None,
    ) -> None:
        if speed_multiplier is None and time_unit is None:
            raise ValidationError(message="需要指定 speed_multiplier 或 time_unit")
        self._clock.set_speed(resolve_speed(speed_multiplier, time_unit))

    # =========================================================================
    # 时间推进
    # =========================================================================

    def tick(self, elapsed_ms: float) -> Optional[datetime]:
        return self._clock.tick(elapsed_ms)

    def set_time(self, value: datetime) -> datetime:
        return self._clock.set_time(value)

    def advance_time(self, delta: timedelta) -> Optional[datetime]:
        return self._clock.advance_time(delta)

    # =========================================================================
    # 重优化窗口
    # =========================================================================

    def is_order_in_current_window(self, order_time: datetime) -> bool:
        return self._window.is_order_in_current_window(order_time)

    def on_order_arrival(self, order_time: datetime) -> bool:
        return self._window.on_order_arrival(order_time)

    def handle_order_arrival(self, order_time: datetime) -> OrderArrivalResponse:
        in_window = self._window.is_order_in_current_window(order_time)
        triggered = self._window.on_order_arrival(order_time)
        return OrderArrivalResponse(
            in_current_window=in_window,
            triggered_early_refresh=triggered,
            next_trigger_time=self._window.next_trigger_time,
        )

    def poll_trigger(self) -> bool:
        """
        检查是否应调用外部规划器

        到期时以当前仿真时间开启新窗口并返回True。
        一次tick跨越多个窗口时只触发一次。
        """
        now = self._clock.simulated_now
        if not self._window.is_trigger_due(now):
            return False

        scheduled = self._window.next_trigger_time
        self._window.mark_triggered(now)
        logger.info(f"触发重优化: scheduled={scheduled}, simulated_now={now}")
        return True

    # =========================================================================
    # 位置计算
    # =========================================================================

    def flight_positions(
        self,
        flights: Iterable[FlightKinematicState],
        curved: bool = False,
    ) -> List[FlightPositionSnapshot]:
        now = self._clock.simulated_now
        if now is None:
            raise ConflictError(
                error_code="SC4006",
                message="时钟未启动，无法计算航班位置",
            )
        return snapshot_flights(flights, now, curved)

    def advance_entities(
        self,
        entities: Iterable[FreeRoamingEntityState],
        elapsed_minutes: float = DEFAULT_ADVANCE_MINUTES,
    ) -> List[FreeRoamingEntityState]:
        try:
            return self._advancer.advance_all(entities, elapsed_minutes)
        except ValueError as e:
            raise ValidationError(message=str(e)) from e

    # =========================================================================
    # 持久化
    # =========================================================================

    def export_state(self) -> str:
        return PersistenceBridge.serialize(self._clock.snapshot(), self._window.snapshot())

    def restore_state(self, blob: str | bytes) -> None:
        """
        从持久化记录恢复

        失败时时钟回到 Stopped 且窗口清空，异常继续抛出
        """
        try:
            clock_state, window_state = PersistenceBridge.restore(blob)
            self._clock.load_snapshot(clock_state)
            self._window.load_snapshot(window_state)
        except Exception:
            self.stop()
            logger.warning("仿真状态恢复失败，时钟已重置为停止状态")
            raise
        logger.info(
            f"仿真状态已恢复: state={self._clock.state.value}, "
            f"simulated_now={self._clock.simulated_now}"
        )

    async def save(self, persistence: SimulationStatePersistence) -> str:
        return await persistence.save(self._clock.snapshot(), self._window.snapshot())

    async def recover(self, persistence: SimulationStatePersistence) -> bool:
        """
        从存储恢复状态

        Returns:
            是否找到并恢复了记录

        Raises:
            PersistenceError: 读取失败或记录损坏（此时时钟为 Stopped）
        """
        try:
            blob = await persistence.load()
        except PersistenceError:
            self.stop()
            raise
        if blob is None:
            return False
        self.restore_state(blob)
        return True

    # =========================================================================
    # 状态
    # =========================================================================

    def get_status(self) -> ClockStatusResponse:
        return ClockStatusResponse(
            state=self._clock.state,
            simulated_now=self._clock.simulated_now,
            speed_multiplier=self._clock.speed_multiplier,
            simulation_start=self._clock.simulation_start,
            elapsed_simulated_seconds=self._clock.elapsed_simulated_seconds,
            elapsed_display=self._clock.format_elapsed(),
            last_trigger_time=self._window.last_trigger_time,
            next_trigger_time=self._window.next_trigger_time,
            window_end=self._window.window_end,
        )

    def _require_started(self, error_code: str, action: str) -> None:
        if self._clock.state is ClockState.STOPPED:
            raise ConflictError(
                error_code=error_code,
                message=f"时钟未启动，不能{action}",
            )


# 全局单例
_controller: Optional[SimulationController] = None


def get_simulation_controller() -> SimulationController:
    """获取仿真控制器单例"""
    global _controller
    if _controller is None:
        _controller = SimulationController()
    return _controller


def reset_simulation_controller() -> None:
    """丢弃单例（进程关闭或测试隔离）"""
    global _controller
    _controller = None
