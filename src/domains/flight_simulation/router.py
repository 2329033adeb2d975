"""
仿真时钟API路由

提供仿真时钟控制、重优化窗口、航班位置计算的REST API接口
路由前缀: /simulation-clock
"""
from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends

from .interpolator import curved_path
from .persistence import SimulationStatePersistence, get_state_persistence
from .schemas import (
    AdvanceTimeRequest,
    ClockStartRequest,
    ClockStatusResponse,
    CurvedPathRequest,
    CurvedPathResponse,
    EntityAdvanceRequest,
    EntityAdvanceResponse,
    FlightPositionsRequest,
    FlightPositionsResponse,
    OrderArrivalRequest,
    OrderArrivalResponse,
    SetTimeRequest,
    SpeedUpdateRequest,
    StateBlobRequest,
    TickRequest,
)
from .service import SimulationController, get_simulation_controller


router = APIRouter(prefix="/simulation-clock", tags=["flight-simulation"])


def get_controller() -> SimulationController:
    """获取仿真控制器依赖"""
    return get_simulation_controller()


async def get_persistence() -> SimulationStatePersistence:
    """获取状态持久化依赖"""
    return await get_state_persistence()


# =============================================================================
# 时钟控制
# =============================================================================

@router.post("/start", response_model=ClockStatusResponse)
async def start_clock(
    request: ClockStartRequest,
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """
    启动仿真时钟

    - **initial_time**: 仿真起始时间
    - **speed_multiplier**: 速度倍率（仿真秒/真实秒）
    - **time_unit**: 速度预设 (seconds/minutes/hours/days)，与 speed_multiplier 二选一
    """
    controller.start(request.initial_time, request.speed_multiplier, request.time_unit)
    return controller.get_status()


@router.post("/pause", response_model=ClockStatusResponse)
async def pause_clock(
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """暂停时钟，保留当前仿真时间"""
    controller.pause()
    return controller.get_status()


@router.post("/resume", response_model=ClockStatusResponse)
async def resume_clock(
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """恢复暂停的时钟"""
    controller.resume()
    return controller.get_status()


@router.post("/stop", response_model=ClockStatusResponse)
async def stop_clock(
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """停止时钟并清空重优化窗口"""
    controller.stop()
    return controller.get_status()


@router.put("/speed", response_model=ClockStatusResponse)
async def update_speed(
    request: SpeedUpdateRequest,
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """调整速度倍率"""
    controller.set_speed(request.speed_multiplier, request.time_unit)
    return controller.get_status()


@router.post("/tick", response_model=ClockStatusResponse)
async def tick_clock(
    request: TickRequest,
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """
    按真实经过时间推进

    供没有后台驱动的调用方手动推进时钟
    """
    controller.tick(request.elapsed_ms)
    return controller.get_status()


@router.post("/time", response_model=ClockStatusResponse)
async def set_time(
    request: SetTimeRequest,
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """直接设置仿真时间（不可回退）"""
    controller.set_time(request.simulated_time)
    return controller.get_status()


@router.post("/advance", response_model=ClockStatusResponse)
async def advance_time(
    request: AdvanceTimeRequest,
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """按仿真时间增量推进"""
    controller.advance_time(timedelta(seconds=request.delta_seconds))
    return controller.get_status()


@router.get("/status", response_model=ClockStatusResponse)
async def get_clock_status(
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """获取时钟与窗口状态"""
    return controller.get_status()


# =============================================================================
# 重优化窗口
# =============================================================================

@router.post("/orders/arrival", response_model=OrderArrivalResponse)
async def order_arrival(
    request: OrderArrivalRequest,
    controller: SimulationController = Depends(get_controller),
) -> OrderArrivalResponse:
    """
    订单到达

    订单落在当前窗口内时提前下次重优化时间
    """
    return controller.handle_order_arrival(request.order_time)


# =============================================================================
# 位置计算
# =============================================================================

@router.post("/flights/positions", response_model=FlightPositionsResponse)
async def flight_positions(
    request: FlightPositionsRequest,
    controller: SimulationController = Depends(get_controller),
) -> FlightPositionsResponse:
    """
    计算航班当前位置

    按当前仿真时间推导每个航班的进度、位置、航向与剩余时间
    """
    snapshots = controller.flight_positions(request.flights, request.curved)
    return FlightPositionsResponse(
        simulated_now=controller.clock.simulated_now,
        total=len(snapshots),
        flights=snapshots,
    )


@router.post("/flights/curve", response_model=CurvedPathResponse)
async def flight_curve(request: CurvedPathRequest) -> CurvedPathResponse:
    """生成用于绘制的弧形航线"""
    return CurvedPathResponse(
        points=curved_path(request.origin, request.destination, request.segment_count)
    )


@router.post("/entities/advance", response_model=EntityAdvanceResponse)
async def advance_entities(
    request: EntityAdvanceRequest,
    controller: SimulationController = Depends(get_controller),
) -> EntityAdvanceResponse:
    """按航向航速推进自由漫游实体"""
    return EntityAdvanceResponse(
        entities=controller.advance_entities(request.entities, request.elapsed_minutes)
    )


# =============================================================================
# 状态持久化
# =============================================================================

@router.post("/state/save")
async def save_state(
    controller: SimulationController = Depends(get_controller),
    persistence: SimulationStatePersistence = Depends(get_persistence),
):
    """保存当前时钟与窗口状态"""
    await controller.save(persistence)
    return {"key": persistence.key, "state": controller.clock.state.value}


@router.post("/state/restore", response_model=ClockStatusResponse)
async def restore_state(
    controller: SimulationController = Depends(get_controller),
    persistence: SimulationStatePersistence = Depends(get_persistence),
) -> ClockStatusResponse:
    """
    从存储恢复时钟与窗口状态

    记录损坏时返回503，时钟重置为停止状态
    """
    await controller.recover(persistence)
    return controller.get_status()


@router.get("/state/export")
async def export_state(
    controller: SimulationController = Depends(get_controller),
):
    """导出当前状态记录（JSON字符串），不写入存储"""
    return {"blob": controller.export_state()}


@router.post("/state/import", response_model=ClockStatusResponse)
async def import_state(
    request: StateBlobRequest,
    controller: SimulationController = Depends(get_controller),
) -> ClockStatusResponse:
    """从调用方提供的状态记录恢复"""
    controller.restore_state(request.blob)
    return controller.get_status()
