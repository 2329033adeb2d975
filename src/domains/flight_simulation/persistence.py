"""
仿真状态持久化

PersistenceBridge 负责时钟/窗口状态与JSON记录之间的转换（纯函数），
SimulationStatePersistence 负责把记录写入键值存储（Redis或内存）。
时钟本身不感知存储介质。
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Tuple

from pydantic import ValidationError as PydanticValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.core.config import settings
from src.core.exceptions import PersistenceError
from src.core.redis import get_redis_client, redis_available
from .schemas import (
    PersistedSimulationState,
    ReoptimizationWindowState,
    SimulatedClockState,
)

logger = logging.getLogger(__name__)


class PersistenceBridge:
    """
    状态序列化

    记录中的时间均为绝对时间戳，恢复时原样还原 simulated_now，
    不根据真实世界经过的时间补算。
    """

    @staticmethod
    def serialize(
        clock_state: SimulatedClockState,
        window_state: ReoptimizationWindowState,
    ) -> str:
        record = PersistedSimulationState(
            simulated_now=clock_state.simulated_now,
            running=clock_state.running,
            speed_multiplier=clock_state.speed_multiplier,
            last_trigger_time=window_state.last_trigger_time,
            next_trigger_time=window_state.next_trigger_time,
            simulation_start=clock_state.simulation_start,
        )
        return record.model_dump_json()

    @staticmethod
    def restore(blob: str | bytes) -> Tuple[SimulatedClockState, ReoptimizationWindowState]:
        """
        解析持久化记录

        Raises:
            PersistenceError: 记录损坏或字段互相矛盾
        """
        try:
            record = PersistedSimulationState.model_validate_json(blob)
        except PydanticValidationError as e:
            raise PersistenceError(
                message="仿真状态记录损坏",
                details=e.errors(include_url=False, include_context=False, include_input=False),
            ) from e

        if record.running and record.simulated_now is None:
            raise PersistenceError(message="运行状态的记录缺少 simulated_now")
        if record.next_trigger_time is not None and record.last_trigger_time is None:
            raise PersistenceError(message="记录含 next_trigger_time 但缺少 last_trigger_time")
        if record.simulated_now is not None and (
            record.last_trigger_time is None or record.next_trigger_time is None
        ):
            raise PersistenceError(message="已启动时钟的记录缺少重优化窗口状态")
        if record.simulated_now is None and record.last_trigger_time is not None:
            raise PersistenceError(message="时钟已停止的记录不应包含窗口状态")
        if (
            record.simulated_now is not None
            and record.last_trigger_time is not None
            and record.last_trigger_time > record.simulated_now
        ):
            raise PersistenceError(message="last_trigger_time 晚于 simulated_now")

        clock_state = SimulatedClockState(
            simulated_now=record.simulated_now,
            running=record.running,
            speed_multiplier=record.speed_multiplier,
            simulation_start=record.simulation_start,
        )
        window_state = ReoptimizationWindowState(
            last_trigger_time=record.last_trigger_time,
            next_trigger_time=record.next_trigger_time,
        )
        return clock_state, window_state


# =============================================================================
# 键值存储
# =============================================================================

class KeyValueStorage(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryStorage:
    """进程内存储，Redis不可用时使用"""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisStorage:
    """Redis存储，写入使用事务pipeline，失败时抛出 PersistenceError"""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            raise PersistenceError(message=f"Redis读取失败: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(key, value)
                await pipe.execute()
        except RedisError as e:
            raise PersistenceError(message=f"Redis写入失败: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            raise PersistenceError(message=f"Redis删除失败: {e}") from e


class SimulationStatePersistence:
    """
    仿真状态存储

    所有状态保存在单个固定键下：
    - flight_simulation:clock_state -> JSON(PersistedSimulationState)
    """

    def __init__(self, storage: KeyValueStorage, key: Optional[str] = None) -> None:
        self._storage = storage
        self._key = key or settings.clock_state_key

    @property
    def key(self) -> str:
        return self._key

    async def save(
        self,
        clock_state: SimulatedClockState,
        window_state: ReoptimizationWindowState,
    ) -> str:
        blob = PersistenceBridge.serialize(clock_state, window_state)
        await self._storage.set(self._key, blob)
        logger.debug(f"仿真状态已保存: key={self._key}")
        return blob

    async def load(self) -> Optional[str]:
        """读取原始记录，不存在时返回None"""
        blob = await self._storage.get(self._key)
        if blob is None:
            logger.info(f"未找到已保存的仿真状态: key={self._key}")
        return blob

    async def clear(self) -> None:
        await self._storage.delete(self._key)


# 全局单例
_persistence: Optional[SimulationStatePersistence] = None


async def get_state_persistence() -> SimulationStatePersistence:
    """获取持久化管理器单例，Redis不可用时退化为内存存储"""
    global _persistence
    if _persistence is None:
        if await redis_available():
            storage: KeyValueStorage = RedisStorage(await get_redis_client())
        else:
            logger.warning("Redis不可用，仿真状态使用内存存储")
            storage = InMemoryStorage()
        _persistence = SimulationStatePersistence(storage)
    return _persistence
