"""
航班位置跟踪

根据航班计划与仿真当前时间推导进度、状态、位置、航向及剩余时间。
计划字段只读，进度不做存储，每次按仿真时间重新计算。
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List

from .interpolator import (
    bearing,
    curved_position,
    haversine_distance_km,
    interpolate_great_circle,
    linear_progress,
    normalize_heading,
)
from .schemas import FlightKinematicState, FlightPositionSnapshot, FlightStatus, to_utc_naive

logger = logging.getLogger(__name__)


def flight_status(progress: float) -> FlightStatus:
    if progress <= 0.0:
        return FlightStatus.SCHEDULED
    if progress >= 1.0:
        return FlightStatus.LANDED
    return FlightStatus.IN_FLIGHT


def snapshot_flight(
    flight: FlightKinematicState,
    now: datetime,
    curved: bool = False,
) -> FlightPositionSnapshot:
    """
    计算单个航班在 now 时刻的位置

    Args:
        flight: 航班计划
        now: 仿真当前时间
        curved: True 时沿绘制用的贝塞尔弧线定位，航向取切线方向

    Returns:
        航班位置快照。到达时间早于起飞时间的异常计划按未出发处理。
    """
    now = to_utc_naive(now)
    progress = linear_progress(flight.departure_time, flight.arrival_time, now)
    status = flight_status(progress)

    if curved:
        position, heading = curved_position(flight.origin, flight.destination, progress)
    else:
        position = interpolate_great_circle(flight.origin, flight.destination, progress)
        if status is FlightStatus.LANDED:
            # 到达终点时取终点处的航迹方向
            heading = normalize_heading(bearing(flight.destination, flight.origin) + 180.0)
        else:
            heading = bearing(position, flight.destination)

    remaining_seconds = 0.0
    if status is not FlightStatus.LANDED and flight.arrival_time > flight.departure_time:
        remaining_seconds = max(0.0, (flight.arrival_time - max(now, flight.departure_time)).total_seconds())

    return FlightPositionSnapshot(
        flight_code=flight.flight_code,
        status=status,
        progress=progress,
        progress_percent=round(progress * 100, 2),
        position=position,
        heading=heading,
        remaining_distance_km=haversine_distance_km(position, flight.destination),
        remaining_seconds=remaining_seconds,
    )


def snapshot_flights(
    flights: Iterable[FlightKinematicState],
    now: datetime,
    curved: bool = False,
) -> List[FlightPositionSnapshot]:
    snapshots = [snapshot_flight(f, now, curved) for f in flights]
    logger.debug(f"计算航班位置: count={len(snapshots)}, now={now}")
    return snapshots
