"""
平面推算

无固定端点的实体（实时演示标记）按航向与航速推进位置。
采用简化的平面近似：1节 = 1海里/小时，1海里 ≈ 1/60 纬度，
经度按当前纬度余弦缩放。与大圆插值互不依赖。
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, List, Tuple

from .constants import (
    DEFAULT_ADVANCE_MINUTES,
    DEFAULT_SPEED_KNOTS,
    MIN_COS_LATITUDE,
    NM_PER_DEGREE,
    POLAR_LATITUDE_LIMIT,
)
from .interpolator import clamp, normalize_heading
from .schemas import FreeRoamingEntityState, GeoPoint

logger = logging.getLogger(__name__)


def wrap_longitude(lon: float) -> float:
    """经度环绕到 [-180, 180]"""
    if not math.isfinite(lon):
        raise ValueError(f"经度必须为有限数: {lon}")
    if -180.0 <= lon <= 180.0:
        return lon
    wrapped = math.fmod(lon + 180.0, 360.0)
    if wrapped < 0:
        wrapped += 360.0
    return wrapped - 180.0


class KinematicAdvancer:
    """
    自由漫游实体推进器

    纯函数式：不修改入参，返回新的实体状态
    """

    def __init__(self, default_speed_knots: float = DEFAULT_SPEED_KNOTS) -> None:
        self._default_speed_knots = default_speed_knots

    def next_position(
        self,
        entity: FreeRoamingEntityState,
        elapsed_minutes: float = DEFAULT_ADVANCE_MINUTES,
    ) -> Tuple[GeoPoint, float]:
        """
        计算经过 elapsed_minutes 仿真分钟后的位置与航向

        Returns:
            (位置, 归一化航向)
        """
        if not math.isfinite(elapsed_minutes) or elapsed_minutes < 0:
            raise ValueError(f"elapsed_minutes 必须为非负有限数: {elapsed_minutes}")

        heading = normalize_heading(entity.heading_deg)
        speed_knots = (
            entity.speed_knots if entity.speed_knots is not None else self._default_speed_knots
        )

        nautical_miles = speed_knots * (elapsed_minutes / 60.0)
        degrees = nautical_miles / NM_PER_DEGREE
        heading_rad = math.radians(heading)

        lat = clamp(entity.position.lat, -POLAR_LATITUDE_LIMIT, POLAR_LATITUDE_LIMIT)
        cos_lat = max(MIN_COS_LATITUDE, math.cos(math.radians(lat)))

        d_lat = degrees * math.cos(heading_rad)
        d_lon = degrees * math.sin(heading_rad) / cos_lat

        next_lat = clamp(lat + d_lat, -POLAR_LATITUDE_LIMIT, POLAR_LATITUDE_LIMIT)
        next_lon = wrap_longitude(entity.position.lon + d_lon)

        return GeoPoint(lat=next_lat, lon=next_lon), heading

    def advance(
        self,
        entity: FreeRoamingEntityState,
        elapsed_minutes: float = DEFAULT_ADVANCE_MINUTES,
    ) -> FreeRoamingEntityState:
        """推进单个实体，终态实体原样返回"""
        if entity.status.is_terminal:
            return entity

        position, heading = self.next_position(entity, elapsed_minutes)
        return entity.model_copy(update={"position": position, "heading_deg": heading})

    def advance_all(
        self,
        entities: Iterable[FreeRoamingEntityState],
        elapsed_minutes: float = DEFAULT_ADVANCE_MINUTES,
    ) -> List[FreeRoamingEntityState]:
        advanced = [self.advance(e, elapsed_minutes) for e in entities]
        logger.debug(f"推进实体: count={len(advanced)}, elapsed_minutes={elapsed_minutes}")
        return advanced
