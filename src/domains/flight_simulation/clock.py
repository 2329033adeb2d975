"""
仿真时钟

维护仿真"当前时间"、运行/暂停/停止状态与速度倍率。
时钟本身不持有定时器，由外部周期性调用 tick() 并传入实际经过的真实时间。
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from fractions import Fraction
from typing import Optional

from src.core.exceptions import ConflictError, ValidationError
from .schemas import ClockState, SimulatedClockState, to_utc_naive

logger = logging.getLogger(__name__)


def format_elapsed(total_seconds: float) -> str:
    """格式化仿真经过时间: HH:MM:SS，超过一天为 Nd HH:MM:SS"""
    total = int(max(0, total_seconds))
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _require_speed(speed_multiplier: float) -> float:
    speed = float(speed_multiplier)
    if not math.isfinite(speed) or speed <= 0:
        raise ValidationError(
            message=f"速度倍率必须为正的有限数: {speed_multiplier}",
            details={"speed_multiplier": speed_multiplier},
        )
    return speed


class SimulationClock:
    """
    仿真时钟

    状态机：
    - Stopped: 无仿真时间
    - Running: tick() 按 elapsed_ms * speed 推进
    - Paused:  保留仿真时间，tick() 忽略

    使用示例:
    ```python
    clock = SimulationClock()
    clock.start(datetime(2025, 1, 1), speed_multiplier=60)

    # 真实过了2秒，仿真时间过了2分钟
    clock.tick(2000)

    clock.pause()
    clock.resume()
    clock.set_speed(3600)
    clock.stop()
    ```

    仿真时间以 timedelta 累加，精度为微秒。
    """

    def __init__(self) -> None:
        self._simulated_now: Optional[datetime] = None
        self._simulation_start: Optional[datetime] = None
        self._running = False
        self._speed_multiplier = 1.0
        # 不足1微秒的仿真时间余量，累积到下次tick
        self._pending_us = Fraction(0)

    # =========================================================================
    # 状态迁移
    # =========================================================================

    def start(self, initial_time: datetime, speed_multiplier: float = 1.0) -> None:
        """Stopped -> Running"""
        if self.state is not ClockState.STOPPED:
            raise ConflictError(
                error_code="SC4001",
                message=f"时钟已启动，当前状态: {self.state.value}",
            )
        speed = _require_speed(speed_multiplier)
        initial_time = to_utc_naive(initial_time)

        self._simulated_now = initial_time
        self._simulation_start = initial_time
        self._pending_us = Fraction(0)
        self._speed_multiplier = speed
        self._running = True

        logger.info(f"仿真时钟启动: simulation_start={initial_time}, speed={speed}x")

    def pause(self) -> None:
        """Running -> Paused"""
        if self.state is ClockState.RUNNING:
            self._running = False
            logger.debug(f"仿真时钟暂停: simulated_now={self._simulated_now}")

    def resume(self) -> None:
        """Paused -> Running"""
        if self.state is ClockState.PAUSED:
            self._running = True
            logger.debug(f"仿真时钟恢复: simulated_now={self._simulated_now}")

    def stop(self) -> None:
        """任意状态 -> Stopped，幂等"""
        if self.state is ClockState.STOPPED:
            return
        logger.info(f"仿真时钟停止: simulated_now={self._simulated_now}")
        self._simulated_now = None
        self._simulation_start = None
        self._running = False
        self._pending_us = Fraction(0)

    def set_speed(self, speed_multiplier: float) -> None:
        """设置速度倍率，Stopped 状态下不可用"""
        if self.state is ClockState.STOPPED:
            raise ConflictError(
                error_code="SC4002",
                message="时钟未启动，不能调整速度",
            )
        self._speed_multiplier = _require_speed(speed_multiplier)
        logger.info(f"速度倍率调整为 {self._speed_multiplier}x，当前仿真时间: {self._simulated_now}")

    # =========================================================================
    # 时间推进
    # =========================================================================

    def tick(self, elapsed_wall_clock_ms: float) -> Optional[datetime]:
        """
        按真实经过时间推进仿真时间

        Args:
            elapsed_wall_clock_ms: 距上次tick实际经过的真实毫秒数

        Returns:
            推进后的仿真时间；非运行状态下忽略并返回当前值

        elapsed_ms * speed 按有理数精确计算，不足1微秒的部分留到下次tick，
        因此多次tick与一次合并tick的结果相同（与浮点乘积相比误差小于1微秒）
        """
        elapsed = float(elapsed_wall_clock_ms)
        if not math.isfinite(elapsed) or elapsed < 0:
            raise ValidationError(
                message=f"elapsed_ms 必须为非负有限数: {elapsed_wall_clock_ms}",
                details={"elapsed_ms": elapsed_wall_clock_ms},
            )
        if not self._running or self._simulated_now is None:
            return self._simulated_now

        total_us = Fraction(elapsed) * Fraction(self._speed_multiplier) * 1000 + self._pending_us
        whole_us = math.floor(total_us)
        self._pending_us = total_us - whole_us
        return self.advance_time(timedelta(microseconds=whole_us))

    def advance_time(self, delta: timedelta) -> Optional[datetime]:
        """按仿真时间增量推进，仅运行状态有效"""
        if delta < timedelta(0):
            raise ValidationError(
                message=f"仿真时间增量不能为负: {delta}",
                details={"delta_seconds": delta.total_seconds()},
            )
        if not self._running or self._simulated_now is None:
            return self._simulated_now

        self._simulated_now = self._simulated_now + delta
        return self._simulated_now

    def set_time(self, value: datetime) -> datetime:
        """
        直接设置仿真时间（运行或暂停状态）

        仿真时间单调不减，早于当前时间的值会被拒绝
        """
        if self._simulated_now is None:
            raise ConflictError(
                error_code="SC4003",
                message="时钟未启动，不能设置仿真时间",
            )
        value = to_utc_naive(value)
        if value < self._simulated_now:
            raise ValidationError(
                message=f"仿真时间不能回退: {value} < {self._simulated_now}",
            )
        self._simulated_now = value
        self._pending_us = Fraction(0)
        return value

    # =========================================================================
    # 只读属性
    # =========================================================================

    @property
    def state(self) -> ClockState:
        if self._simulated_now is None:
            return ClockState.STOPPED
        return ClockState.RUNNING if self._running else ClockState.PAUSED

    @property
    def simulated_now(self) -> Optional[datetime]:
        return self._simulated_now

    @property
    def simulation_start(self) -> Optional[datetime]:
        return self._simulation_start

    @property
    def speed_multiplier(self) -> float:
        return self._speed_multiplier

    @property
    def is_running(self) -> bool:
        return self.state is ClockState.RUNNING

    @property
    def elapsed_simulated_seconds(self) -> float:
        """自起始时间以来的仿真秒数"""
        if self._simulated_now is None or self._simulation_start is None:
            return 0.0
        return (self._simulated_now - self._simulation_start).total_seconds()

    def format_elapsed(self) -> str:
        return format_elapsed(self.elapsed_simulated_seconds)

    # =========================================================================
    # 快照
    # =========================================================================

    def snapshot(self) -> SimulatedClockState:
        return SimulatedClockState(
            simulated_now=self._simulated_now,
            running=self._running,
            speed_multiplier=self._speed_multiplier,
            simulation_start=self._simulation_start,
        )

    def load_snapshot(self, state: SimulatedClockState) -> None:
        """
        从快照恢复

        直接使用快照中的绝对时间，不根据真实时间差补算
        """
        if state.running and state.simulated_now is None:
            raise ValidationError(message="运行状态的快照缺少 simulated_now")

        self._speed_multiplier = _require_speed(state.speed_multiplier)
        self._pending_us = Fraction(0)
        self._simulated_now = state.simulated_now
        self._running = state.running and state.simulated_now is not None
        if state.simulated_now is None:
            self._simulation_start = None
        else:
            self._simulation_start = state.simulation_start or state.simulated_now

        logger.info(f"仿真时钟恢复自快照: state={self.state.value}, simulated_now={self._simulated_now}")

    def get_status(self) -> dict:
        """获取时钟状态"""
        return {
            "state": self.state.value,
            "simulated_now": self._simulated_now.isoformat() if self._simulated_now else None,
            "simulation_start": self._simulation_start.isoformat() if self._simulation_start else None,
            "speed_multiplier": self._speed_multiplier,
            "elapsed_simulated_seconds": self.elapsed_simulated_seconds,
            "elapsed_display": self.format_elapsed(),
        }
