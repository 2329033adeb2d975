"""外部规划器 HTTP 客户端。

仿真时钟到达重优化触发时间时调用规划器重新优化订单分配。
请求体为空："立即执行一次重优化"，不携带仿真核心字段。
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

logger = logging.getLogger(__name__)


class PlannerError(RuntimeError):
    """规划器基础异常"""


class PlannerConfigurationError(PlannerError):
    """规划器地址未配置"""


class PlannerRequestError(PlannerError):
    """规划器网络请求失败或返回错误状态"""


class PlannerClient:
    """规划器客户端

    只负责发出请求，不做重试；重试策略属于网络层调用方。
    """

    def __init__(
        self,
        base_url: str | None,
        path: str = "/api/algoritmo/diario/ejecutar",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """初始化客户端

        Args:
            base_url: 规划器服务基础地址
            path: 重优化接口路径
            timeout: 请求超时秒数
            transport: 自定义传输层（测试注入 httpx.MockTransport）
        """
        if not base_url:
            raise PlannerConfigurationError("planner_base_url 未配置")
        self._base_url = base_url.rstrip("/")
        self._path = path
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    async def request_reoptimization(self) -> Mapping[str, Any]:
        """请求规划器立即执行重优化

        Returns:
            规划器返回的JSON对象，无响应体时为空字典

        Raises:
            PlannerRequestError: 网络失败或HTTP错误状态
        """
        logger.info(
            "planner_request_reoptimization",
            extra={"base_url": self._base_url, "path": self._path},
        )
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                trust_env=False,
            ) as client:
                resp = await client.post(self._path, json={})
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("planner_request_failed", extra={"error": str(exc)})
            raise PlannerRequestError(f"请求失败: {exc}") from exc

        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as exc:
            raise PlannerRequestError(f"响应解析失败: {resp.text[:200]}") from exc
        return data if isinstance(data, dict) else {"result": data}
