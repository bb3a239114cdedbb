"""
vCenter 连接管理

- 懒加载: 第一次需要时才登录
- 复用: 会话仍然可用时直接返回
- 不在内部重试: 重试节奏由检查调度器和外层 tick 决定
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple

from ..checks.models import (
    ClusterCheckResult,
    make_cluster_check_result_pass,
    make_connection_failed_result,
    make_generic_vcenter_api_error,
)
from ..utils.errors import (
    CONNECTIVITY_ERRORS,
    OperatorError,
    VCenterConnectionError,
    is_connectivity_error,
)
from .connection import VCenterConnection

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], Awaitable[VCenterConnection]]


class ConnectionManager:
    """vCenter 会话管理器

    Example:
        manager = ConnectionManager(factory, timeout=30)
        connection, result, keep_existing = await manager.connect()
        if connection is None:
            # result.check_status == CheckStatus.CONNECTION_FAILED
            ...
    """

    def __init__(self, factory: ConnectionFactory, timeout: float = 30.0):
        """
        Args:
            factory: 异步工厂,返回已登录的 VCenterConnection
            timeout: 登录 / 会话探活超时 (秒)
        """
        self._factory = factory
        self.timeout = timeout
        self._connection: Optional[VCenterConnection] = None

    @property
    def connection(self) -> Optional[VCenterConnection]:
        return self._connection

    async def connect(self) -> Tuple[Optional[VCenterConnection], ClusterCheckResult, bool]:
        """获取可用的 vCenter 会话

        Returns:
            (connection, result, keep_existing)
            - 成功: (会话, PASS 结果, 是否复用了已有会话)
            - 失败: (None, 失败结果, False)
        """
        if self._connection is not None:
            if await self._is_alive(self._connection):
                return self._connection, make_cluster_check_result_pass(), True
            logger.info("vCenter 会话已失效,重新登录: %s", self._connection.server)
            await self._discard()

        try:
            connection = await asyncio.wait_for(self._factory(), self.timeout)
        except asyncio.TimeoutError:
            error = VCenterConnectionError(f"login timed out after {self.timeout}s")
            logger.warning("连接 vCenter 超时: %s", error)
            return None, make_connection_failed_result(error), False
        except Exception as e:
            if is_connectivity_error(e):
                logger.warning("连接 vCenter 失败: %s", e)
                return None, make_connection_failed_result(e), False
            logger.error("vCenter API 错误: %s", e)
            return None, make_generic_vcenter_api_error(e), False

        self._connection = connection
        logger.info("已连接 vCenter: %s", connection.server)
        return connection, make_cluster_check_result_pass(), False

    async def _is_alive(self, connection: VCenterConnection) -> bool:
        try:
            return await asyncio.wait_for(connection.is_active(), self.timeout)
        except asyncio.TimeoutError:
            return False

    async def _discard(self):
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await asyncio.wait_for(connection.logout(), self.timeout)
        except (asyncio.TimeoutError, *CONNECTIVITY_ERRORS, OperatorError) as e:
            logger.debug("注销失效会话失败: %s", e)

    async def close(self):
        """注销当前会话"""
        await self._discard()
