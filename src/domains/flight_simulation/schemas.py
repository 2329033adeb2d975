"""
飞行仿真数据模型

定义仿真时钟状态、重优化窗口、航班运动状态、自由漫游实体等核心数据结构
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field, ConfigDict

from .constants import DEFAULT_HEADING_DEG


class ClockState(str, Enum):
    """仿真时钟状态"""
    STOPPED = "stopped"    # 已停止（时间清空）
    RUNNING = "running"    # 运行中
    PAUSED = "paused"      # 暂停（保留时间）


class TimeUnit(str, Enum):
    """回放速度预设：每真实秒推进一个该单位的仿真时间"""
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    @property
    def speed_multiplier(self) -> float:
        return {
            TimeUnit.SECONDS: 1.0,
            TimeUnit.MINUTES: 60.0,
            TimeUnit.HOURS: 3600.0,
            TimeUnit.DAYS: 86400.0,
        }[self]


class FlightStatus(str, Enum):
    """航班状态（由进度推导）"""
    SCHEDULED = "scheduled"
    IN_FLIGHT = "in_flight"
    LANDED = "landed"


class EntityStatus(str, Enum):
    """自由漫游实体状态"""
    CONFIRMED = "confirmed"
    EN_ROUTE = "en_route"
    DELAYED = "delayed"
    FINISHED = "finished"        # 终态，位置冻结

    @property
    def is_terminal(self) -> bool:
        return self is EntityStatus.FINISHED


def to_utc_naive(value: datetime) -> datetime:
    """带时区的时间换算为UTC并去掉时区，无时区的时间视为UTC原样返回"""
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=None)
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# 所有仿真时间统一为无时区的UTC时间
UtcDateTime = Annotated[datetime, AfterValidator(to_utc_naive)]


# ============================================================================
# 基础几何类型
# ============================================================================

class GeoPoint(BaseModel):
    """地理坐标点（度）"""
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False, description="纬度")
    lon: float = Field(..., allow_inf_nan=False, description="经度，输入可超出±180，输出统一归一化")


# ============================================================================
# 时钟与窗口状态
# ============================================================================

class SimulatedClockState(BaseModel):
    """仿真时钟状态快照"""
    simulated_now: Optional[UtcDateTime] = Field(None, description="当前仿真时间")
    running: bool = Field(False, description="是否运行中")
    speed_multiplier: float = Field(1.0, gt=0, description="每真实秒对应的仿真秒数")
    simulation_start: Optional[UtcDateTime] = Field(None, description="仿真起始时间")

    @property
    def state(self) -> ClockState:
        if self.simulated_now is None:
            return ClockState.STOPPED
        return ClockState.RUNNING if self.running else ClockState.PAUSED


class ReoptimizationWindowState(BaseModel):
    """重优化窗口状态快照"""
    last_trigger_time: Optional[UtcDateTime] = Field(None, description="上次触发规划器的仿真时间")
    next_trigger_time: Optional[UtcDateTime] = Field(None, description="下次触发规划器的仿真时间")


class PersistedSimulationState(BaseModel):
    """持久化记录，所有时间均为绝对时间戳"""
    simulated_now: Optional[UtcDateTime] = None
    running: bool = False
    speed_multiplier: float = Field(1.0, gt=0)
    last_trigger_time: Optional[UtcDateTime] = None
    next_trigger_time: Optional[UtcDateTime] = None
    simulation_start: Optional[UtcDateTime] = None


# ============================================================================
# 航班与实体
# ============================================================================

class FlightKinematicState(BaseModel):
    """航班计划（只读，核心不修改计划字段）"""
    flight_code: str = Field(..., description="航班号")
    origin: GeoPoint = Field(..., description="起飞机场坐标")
    destination: GeoPoint = Field(..., description="目的机场坐标")
    departure_time: UtcDateTime = Field(..., description="起飞时间")
    arrival_time: UtcDateTime = Field(..., description="到达时间，异常数据可能早于起飞时间")


class FlightPositionSnapshot(BaseModel):
    """航班实时位置"""
    flight_code: str
    status: FlightStatus
    progress: float = Field(..., ge=0, le=1)
    progress_percent: float = Field(..., ge=0, le=100)
    position: GeoPoint
    heading: float = Field(..., ge=0, lt=360, description="航向 (0-360, 正北为0)")
    remaining_distance_km: float = Field(..., ge=0)
    remaining_seconds: float = Field(..., ge=0, description="剩余仿真秒数")


class FreeRoamingEntityState(BaseModel):
    """无固定端点的移动实体（实时演示标记）"""
    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(..., description="实体标识")
    position: GeoPoint
    heading_deg: float = Field(DEFAULT_HEADING_DEG, allow_inf_nan=False, description="航向，任意实数，推算时归一化")
    speed_knots: Optional[float] = Field(None, ge=0, allow_inf_nan=False, description="航速（节），缺省400")
    status: EntityStatus = Field(EntityStatus.EN_ROUTE)


# ============================================================================
# API请求/响应模型
# ============================================================================

class ClockStartRequest(BaseModel):
    """启动时钟请求，speed_multiplier 与 time_unit 二选一"""
    initial_time: UtcDateTime = Field(..., description="仿真起始时间")
    speed_multiplier: Optional[float] = Field(None, gt=0, description="速度倍率")
    time_unit: Optional[TimeUnit] = Field(None, description="速度预设")


class SpeedUpdateRequest(BaseModel):
    speed_multiplier: Optional[float] = Field(None, description="速度倍率")
    time_unit: Optional[TimeUnit] = Field(None, description="速度预设")


class TickRequest(BaseModel):
    elapsed_ms: float = Field(..., description="实际经过的真实毫秒数")


class SetTimeRequest(BaseModel):
    simulated_time: UtcDateTime


class AdvanceTimeRequest(BaseModel):
    delta_seconds: float = Field(..., description="仿真时间增量（秒）")


class ClockStatusResponse(BaseModel):
    """时钟状态响应"""
    state: ClockState
    simulated_now: Optional[UtcDateTime]
    speed_multiplier: float
    simulation_start: Optional[UtcDateTime]
    elapsed_simulated_seconds: float
    elapsed_display: str
    last_trigger_time: Optional[UtcDateTime]
    next_trigger_time: Optional[UtcDateTime]
    window_end: Optional[UtcDateTime]


class OrderArrivalRequest(BaseModel):
    order_time: UtcDateTime = Field(..., description="订单到达的仿真时间")


class OrderArrivalResponse(BaseModel):
    in_current_window: bool
    triggered_early_refresh: bool
    next_trigger_time: Optional[UtcDateTime]


class FlightPositionsRequest(BaseModel):
    flights: list[FlightKinematicState] = Field(default_factory=list)
    curved: bool = Field(False, description="按贝塞尔曲线而非大圆计算位置")


class FlightPositionsResponse(BaseModel):
    simulated_now: UtcDateTime
    total: int
    flights: list[FlightPositionSnapshot]


class CurvedPathRequest(BaseModel):
    origin: GeoPoint
    destination: GeoPoint
    segment_count: int = Field(60, ge=1)


class CurvedPathResponse(BaseModel):
    points: list[GeoPoint]


class EntityAdvanceRequest(BaseModel):
    entities: list[FreeRoamingEntityState] = Field(default_factory=list)
    elapsed_minutes: float = Field(0.3, ge=0, allow_inf_nan=False, description="经过的仿真分钟数")


class EntityAdvanceResponse(BaseModel):
    entities: list[FreeRoamingEntityState]


class StateBlobRequest(BaseModel):
    blob: str = Field(..., description="PersistenceBridge.serialize 生成的JSON")
