"""
重优化窗口调度

以上次触发时间为起点划定固定长度的仿真时间窗口，
决定新订单是否落在当前窗口内，以及下次调用外部规划器的时间
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from .clock import SimulationClock
from .constants import TRIGGER_LEAD, WINDOW_LENGTH
from .schemas import ReoptimizationWindowState, to_utc_naive

logger = logging.getLogger(__name__)


class WindowScheduler:
    """
    重优化窗口调度器

    读取时钟的当前时间与运行状态，但不修改时钟。
    不变量：next_trigger_time = last_trigger_time + window_length - trigger_lead
    （订单提前触发时除外，此时 next_trigger_time = simulated_now + trigger_lead）
    """

    def __init__(
        self,
        clock: SimulationClock,
        window_length: timedelta = WINDOW_LENGTH,
        trigger_lead: timedelta = TRIGGER_LEAD,
    ) -> None:
        if trigger_lead >= window_length:
            raise ValueError("trigger_lead 必须小于 window_length")
        self._clock = clock
        self._window_length = window_length
        self._trigger_lead = trigger_lead
        self._last_trigger_time: Optional[datetime] = None
        self._next_trigger_time: Optional[datetime] = None

    @property
    def window_length(self) -> timedelta:
        return self._window_length

    @property
    def trigger_lead(self) -> timedelta:
        return self._trigger_lead

    @property
    def last_trigger_time(self) -> Optional[datetime]:
        return self._last_trigger_time

    @property
    def next_trigger_time(self) -> Optional[datetime]:
        return self._next_trigger_time

    @property
    def window_end(self) -> Optional[datetime]:
        if self._last_trigger_time is None:
            return None
        return self._last_trigger_time + self._window_length

    # =========================================================================
    # 生命周期
    # =========================================================================

    def seed(self, start: datetime) -> None:
        """时钟启动时播种首个窗口"""
        start = to_utc_naive(start)
        self._last_trigger_time = start
        self._next_trigger_time = start + self._window_length - self._trigger_lead
        logger.info(
            f"重优化窗口初始化: window=[{start}, {self.window_end}], "
            f"next_trigger={self._next_trigger_time}"
        )

    def clear(self) -> None:
        self._last_trigger_time = None
        self._next_trigger_time = None

    def mark_triggered(self, at: Optional[datetime] = None) -> None:
        """
        记录一次规划器调用，以调用时刻开启新窗口

        Args:
            at: 触发时的仿真时间，缺省取时钟当前时间
        """
        trigger_time = at if at is not None else self._clock.simulated_now
        if trigger_time is None:
            return
        self.seed(trigger_time)

    # =========================================================================
    # 查询
    # =========================================================================

    def is_order_in_current_window(self, order_time: datetime) -> bool:
        """订单时间是否落在 [last_trigger, last_trigger + window_length] 内（含边界）"""
        if not self._clock.is_running or self._last_trigger_time is None:
            return False
        order_time = to_utc_naive(order_time)
        return self._last_trigger_time <= order_time <= self._last_trigger_time + self._window_length

    def is_trigger_due(self, now: Optional[datetime] = None) -> bool:
        """当前仿真时间是否已到达下次触发时间"""
        now = to_utc_naive(now) if now is not None else self._clock.simulated_now
        if not self._clock.is_running or now is None or self._next_trigger_time is None:
            return False
        return now >= self._next_trigger_time

    # =========================================================================
    # 订单事件
    # =========================================================================

    def on_order_arrival(self, order_time: datetime) -> bool:
        """
        订单到达

        落在当前窗口内的订单会把下次触发时间重设为 simulated_now + trigger_lead，
        保证规划器在窗口关闭前至少还有 trigger_lead 的仿真时间。
        同一窗口内的每个订单都会重新计算。

        Returns:
            是否触发了提前刷新
        """
        order_time = to_utc_naive(order_time)
        now = self._clock.simulated_now
        if now is None or not self.is_order_in_current_window(order_time):
            return False

        self._next_trigger_time = now + self._trigger_lead
        logger.info(
            f"订单落入当前窗口，提前刷新: order_time={order_time}, "
            f"next_trigger={self._next_trigger_time}"
        )
        return True

    # =========================================================================
    # 快照
    # =========================================================================

    def snapshot(self) -> ReoptimizationWindowState:
        return ReoptimizationWindowState(
            last_trigger_time=self._last_trigger_time,
            next_trigger_time=self._next_trigger_time,
        )

    def load_snapshot(self, state: ReoptimizationWindowState) -> None:
        self._last_trigger_time = state.last_trigger_time
        self._next_trigger_time = state.next_trigger_time
