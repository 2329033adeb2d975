"""
航线插值算法

提供大圆插值、方位角、弧形航线采样、时间进度等纯函数，
渲染位置与ETA计算共用同一套实现
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import List, Optional, Tuple

from .constants import (
    BEZIER_OFFSET_FRACTION,
    COINCIDENT_EPSILON_RAD,
    DEFAULT_CURVE_SEGMENTS,
    EARTH_RADIUS_KM,
)
from .schemas import GeoPoint, to_utc_naive


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def normalize_longitude(lon: float) -> float:
    """经度归一化到 (-180, 180]"""
    wrapped = math.fmod(lon + 180.0, 360.0)
    if wrapped <= 0:
        wrapped += 360.0
    return wrapped - 180.0


def normalize_heading(heading: float) -> float:
    """角度归一化到 [0, 360)"""
    result = heading % 360.0
    # 极小负数取模会得到 360.0
    return 0.0 if result >= 360.0 else result


def angular_distance(origin: GeoPoint, destination: GeoPoint) -> float:
    """
    两点间的球面角距离（弧度）

    使用haversine公式，短距离下数值稳定
    """
    phi1 = math.radians(origin.lat)
    phi2 = math.radians(destination.lat)
    delta_phi = phi2 - phi1
    delta_lambda = math.radians(destination.lon - origin.lon)

    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    a = clamp(a, 0.0, 1.0)
    return 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_distance_km(origin: GeoPoint, destination: GeoPoint) -> float:
    """两点间大圆距离（公里）"""
    return EARTH_RADIUS_KM * angular_distance(origin, destination)


def interpolate_great_circle(
    origin: GeoPoint,
    destination: GeoPoint,
    progress: float,
) -> GeoPoint:
    """
    沿大圆弧做球面线性插值（SLERP）

    Args:
        origin: 起点
        destination: 终点
        progress: 进度，超出 [0, 1] 时先截断

    Returns:
        插值点，经度归一化到 (-180, 180]。起终点重合时直接返回起点。
        对跖点之间不存在唯一大圆，结果不作保证。
    """
    progress = clamp(progress, 0.0, 1.0)

    delta = angular_distance(origin, destination)
    if delta < COINCIDENT_EPSILON_RAD:
        return origin

    phi1 = math.radians(origin.lat)
    lambda1 = math.radians(origin.lon)
    phi2 = math.radians(destination.lat)
    lambda2 = math.radians(destination.lon)

    sin_delta = math.sin(delta)
    a = math.sin((1 - progress) * delta) / sin_delta
    b = math.sin(progress * delta) / sin_delta

    x = a * math.cos(phi1) * math.cos(lambda1) + b * math.cos(phi2) * math.cos(lambda2)
    y = a * math.cos(phi1) * math.sin(lambda1) + b * math.cos(phi2) * math.sin(lambda2)
    z = a * math.sin(phi1) + b * math.sin(phi2)

    lat = math.degrees(math.atan2(z, math.hypot(x, y)))
    lon = math.degrees(math.atan2(y, x))

    return GeoPoint(lat=clamp(lat, -90.0, 90.0), lon=normalize_longitude(lon))


def bearing(origin: GeoPoint, destination: GeoPoint) -> float:
    """
    计算从起点到终点的初始方位角（度）

    返回值范围: [0, 360)，正北为0，顺时针增加
    """
    phi1 = math.radians(origin.lat)
    phi2 = math.radians(destination.lat)
    delta_lambda = math.radians(destination.lon - origin.lon)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = (
        math.cos(phi1) * math.sin(phi2) -
        math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    )

    return normalize_heading(math.degrees(math.atan2(x, y)))


def _control_point(origin: GeoPoint, destination: GeoPoint) -> Optional[Tuple[float, float]]:
    """二次贝塞尔控制点 (lat, lon)，起终点重合时返回None"""
    d_lat = destination.lat - origin.lat
    d_lon = destination.lon - origin.lon
    distance = math.hypot(d_lat, d_lon)
    if distance == 0.0:
        return None

    offset = distance * BEZIER_OFFSET_FRACTION
    # 垂直于直线方向的单位向量
    perp_lat = -d_lon / distance
    perp_lon = d_lat / distance

    mid_lat = (origin.lat + destination.lat) / 2
    mid_lon = (origin.lon + destination.lon) / 2
    return mid_lat + perp_lat * offset, mid_lon + perp_lon * offset


def _bezier(t: float, p0: float, p1: float, p2: float) -> float:
    # B(t) = (1-t)²P0 + 2(1-t)tP1 + t²P2
    t1 = 1 - t
    return t1 * t1 * p0 + 2 * t1 * t * p1 + t * t * p2


def curved_path(
    origin: GeoPoint,
    destination: GeoPoint,
    segment_count: int = DEFAULT_CURVE_SEGMENTS,
) -> List[GeoPoint]:
    """
    生成弧形航线（二次贝塞尔曲线）用于绘制

    控制点沿起终点连线的垂直方向偏移平面距离的15%。
    经度保持连续不做归一化，便于跨越180度经线绘制。

    Args:
        origin: 起点
        destination: 终点
        segment_count: 分段数，返回 segment_count + 1 个点

    Returns:
        航线点序列；起终点重合时返回重复的起点
    """
    if segment_count < 1:
        raise ValueError("segment_count 至少为1")

    control = _control_point(origin, destination)
    if control is None:
        return [origin] * (segment_count + 1)

    control_lat, control_lon = control
    path: List[GeoPoint] = []
    for i in range(segment_count + 1):
        t = i / segment_count
        lat = _bezier(t, origin.lat, control_lat, destination.lat)
        lon = _bezier(t, origin.lon, control_lon, destination.lon)
        path.append(GeoPoint(lat=clamp(lat, -90.0, 90.0), lon=lon))

    return path


def curved_position(
    origin: GeoPoint,
    destination: GeoPoint,
    progress: float,
) -> Tuple[GeoPoint, float]:
    """
    弧形航线上的位置与航向

    航向取曲线切线方向（平面坐标），与绘制的弧线保持一致
    """
    progress = clamp(progress, 0.0, 1.0)
    control = _control_point(origin, destination)
    if control is None:
        return origin, 0.0

    control_lat, control_lon = control
    lat = _bezier(progress, origin.lat, control_lat, destination.lat)
    lon = _bezier(progress, origin.lon, control_lon, destination.lon)

    # B'(t) = 2(1-t)(P1-P0) + 2t(P2-P1)
    d_lat = 2 * (1 - progress) * (control_lat - origin.lat) + 2 * progress * (destination.lat - control_lat)
    d_lon = 2 * (1 - progress) * (control_lon - origin.lon) + 2 * progress * (destination.lon - control_lon)
    heading = normalize_heading(math.degrees(math.atan2(d_lon, d_lat)))

    return GeoPoint(lat=clamp(lat, -90.0, 90.0), lon=normalize_longitude(lon)), heading


def linear_progress(start: datetime, end: datetime, now: datetime) -> float:
    """
    线性时间进度 (now - start) / (end - start)，截断到 [0, 1]

    end <= start 视为未出发，返回0
    """
    start, end, now = to_utc_naive(start), to_utc_naive(end), to_utc_naive(now)
    total = (end - start).total_seconds()
    if total <= 0:
        return 0.0
    elapsed = (now - start).total_seconds()
    return clamp(elapsed / total, 0.0, 1.0)
