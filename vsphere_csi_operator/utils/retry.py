"""
重试机制模块

基于 Tenacity 库提供状态写入冲突重试。

vCenter 连接和环境检查不在此重试,重试节奏完全由检查调度器的
时间间隔和外层 tick 决定。
"""

import logging
from typing import Type, Tuple

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from .errors import ConflictError

logger = logging.getLogger(__name__)


def retry_on_conflict(
    max_attempts: int = 5,
    wait_min: float = 0.05,
    wait_max: float = 1,
    exceptions: Tuple[Type[Exception], ...] = (ConflictError,)
):
    """Operator 状态读-改-写 冲突重试装饰器

    对 resourceVersion 冲突进行重试,使用指数退避策略。
    同时支持同步和异步函数 (tenacity 自动识别)。

    Args:
        max_attempts: 最大尝试次数 (默认 5)
        wait_min: 最小等待时间 (秒, 默认 0.05)
        wait_max: 最大等待时间 (秒, 默认 1)
        exceptions: 需要重试的异常类型

    Returns:
        装饰器函数

    Example:
        @retry_on_conflict()
        def write_status(client):
            _, status, version = client.get_operator_state()
            ...
            client.update_operator_status(version, status)
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=wait_min, min=wait_min, max=wait_max),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
