"""
飞行仿真模块

提供可加速的仿真时钟、订单重优化窗口以及航班/实体位置推算能力。

核心组件：
- SimulationClock: 仿真时钟（运行/暂停/停止、速度倍率）
- WindowScheduler: 重优化窗口调度（订单到达提前刷新）
- SimulationController: 时钟与窗口的唯一协调者
- 航线插值: 大圆插值、方位角、贝塞尔弧线
- KinematicAdvancer: 自由漫游实体平面推算
- PersistenceBridge / SimulationStatePersistence: 状态序列化与Redis存储
- ClockDriver: 后台tick驱动与规划器调用

使用示例:
```python
from src.domains.flight_simulation import (
    get_simulation_controller,
    FlightKinematicState,
    GeoPoint,
)

controller = get_simulation_controller()
controller.start(datetime(2025, 1, 1), speed_multiplier=60)

# 外部周期源推进时间
controller.tick(2000)
if controller.poll_trigger():
    await planner.request_reoptimization()

# 计算航班位置
positions = controller.flight_positions([flight])
```
"""

from .schemas import (
    ClockState,
    TimeUnit,
    FlightStatus,
    EntityStatus,
    GeoPoint,
    SimulatedClockState,
    ReoptimizationWindowState,
    PersistedSimulationState,
    FlightKinematicState,
    FlightPositionSnapshot,
    FreeRoamingEntityState,
    ClockStatusResponse,
    OrderArrivalResponse,
)
from .clock import SimulationClock, format_elapsed
from .window import WindowScheduler
from .interpolator import (
    angular_distance,
    bearing,
    curved_path,
    curved_position,
    haversine_distance_km,
    interpolate_great_circle,
    linear_progress,
)
from .kinematics import KinematicAdvancer
from .tracker import flight_status, snapshot_flight, snapshot_flights
from .persistence import (
    PersistenceBridge,
    InMemoryStorage,
    RedisStorage,
    SimulationStatePersistence,
    get_state_persistence,
)
from .service import (
    SimulationController,
    get_simulation_controller,
    reset_simulation_controller,
)
from .driver import ClockDriver, get_clock_driver, shutdown_clock_driver
from .router import router as flight_simulation_router

__all__ = [
    # Schemas
    "ClockState",
    "TimeUnit",
    "FlightStatus",
    "EntityStatus",
    "GeoPoint",
    "SimulatedClockState",
    "ReoptimizationWindowState",
    "PersistedSimulationState",
    "FlightKinematicState",
    "FlightPositionSnapshot",
    "FreeRoamingEntityState",
    "ClockStatusResponse",
    "OrderArrivalResponse",
    # Clock
    "SimulationClock",
    "format_elapsed",
    "WindowScheduler",
    # Geometry
    "angular_distance",
    "bearing",
    "curved_path",
    "curved_position",
    "haversine_distance_km",
    "interpolate_great_circle",
    "linear_progress",
    "KinematicAdvancer",
    "flight_status",
    "snapshot_flight",
    "snapshot_flights",
    # Persistence
    "PersistenceBridge",
    "InMemoryStorage",
    "RedisStorage",
    "SimulationStatePersistence",
    "get_state_persistence",
    # Service
    "SimulationController",
    "get_simulation_controller",
    "reset_simulation_controller",
    "ClockDriver",
    "get_clock_driver",
    "shutdown_clock_driver",
    # Router
    "flight_simulation_router",
]
