"""
飞行仿真固定参数

运行期不可修改，区别于 src.core.config 中可通过环境变量覆盖的部署配置
"""
from __future__ import annotations

from datetime import timedelta

# 重优化窗口（仿真时间）
WINDOW_LENGTH = timedelta(minutes=10)
# 窗口结束前提前触发规划器的时间
TRIGGER_LEAD = timedelta(minutes=2)

# 地球半径（公里）
EARTH_RADIUS_KM = 6371.0

# 角距离小于该值视为重合点（弧度）
COINCIDENT_EPSILON_RAD = 1e-12

# 贝塞尔曲线控制点偏移比例（相对平面距离）
BEZIER_OFFSET_FRACTION = 0.15
DEFAULT_CURVE_SEGMENTS = 60

# 平面推算参数
POLAR_LATITUDE_LIMIT = 85.0
MIN_COS_LATITUDE = 0.15
NM_PER_DEGREE = 60.0
DEFAULT_SPEED_KNOTS = 400.0
DEFAULT_HEADING_DEG = 90.0
DEFAULT_ADVANCE_MINUTES = 0.3
