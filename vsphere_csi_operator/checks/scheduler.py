"""
环境检查调度器

缓存最近一次聚合结果,限制访问 vCenter 的频率:
- 未到 next_check_at 且未强制: 直接返回缓存结果
- 否则按注册顺序依次执行所有探针 (不并发,保证聚合结果确定)
- 检查通过: 下次检查在 check_interval 之后
- 检查失败: 指数退避,从 initial_backoff 开始翻倍,最长 check_interval
- 重叠调用等待正在执行的那一轮,不会重复执行探针

缓存只存在于进程内存中,重启后总是重新检查。
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from ..utils.errors import CheckStateError
from .aggregator import aggregate_results
from .models import ClusterCheckResult, make_connection_failed_result
from .probes import CheckContext, Probe

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CachedCheckState:
    """调度器独占的缓存状态

    Attributes:
        last_results: 上一轮各探针结果 (注册顺序)
        aggregate: 上一轮聚合结果
        next_check_at: 下次需要重新检查的时间
    """
    last_results: Tuple[ClusterCheckResult, ...]
    aggregate: ClusterCheckResult
    next_check_at: datetime


class EnvironmentCheckScheduler:
    """带 TTL 缓存的组合环境检查器

    Example:
        scheduler = EnvironmentCheckScheduler(default_probes())
        result = await scheduler.get_or_run(context)
        delay = scheduler.next_check_delay()
    """

    def __init__(
        self,
        probes: Sequence[Probe],
        check_interval: timedelta = timedelta(minutes=10),
        initial_backoff: timedelta = timedelta(minutes=1),
        probe_timeout: float = 30.0,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            probes: 探针列表,顺序即聚合优先级
            check_interval: 检查通过后的复查间隔
            initial_backoff: 检查失败后的首次复查间隔
            probe_timeout: 单个探针超时 (秒)
            clock: 时间源 (测试中注入)
        """
        self.probes: List[Probe] = list(probes)
        self.check_interval = check_interval
        self.initial_backoff = min(initial_backoff, check_interval)
        self.probe_timeout = probe_timeout
        self.clock = clock or utc_now

        self._state: Optional[CachedCheckState] = None
        self._backoff = self.initial_backoff
        self._inflight: Optional[asyncio.Task] = None

        # 统计信息
        self.runs = 0
        self.cache_hits = 0

    @property
    def state(self) -> Optional[CachedCheckState]:
        return self._state

    async def get_or_run(
        self,
        context: CheckContext,
        now: Optional[datetime] = None,
        force: bool = False,
    ) -> ClusterCheckResult:
        """返回缓存结果,或在需要时重新执行检查

        Args:
            context: 探针依赖
            now: 当前时间 (默认取 clock)
            force: 立即失效缓存并重新检查

        Returns:
            聚合后的 ClusterCheckResult

        Raises:
            CheckStateError: 缓存状态损坏
        """
        if self._inflight is not None and not self._inflight.done():
            # 正在检查: 共享同一轮结果。shield 只保护本轮不被等待方取消;
            # 发起方被取消时本轮随之取消,所有等待方同样收到 CancelledError
            return await asyncio.shield(self._inflight)

        now = now or self.clock()
        if not force:
            cached = self._cached_result(now)
            if cached is not None:
                self.cache_hits += 1
                return cached

        # 发起方被取消时,本轮检查随之取消
        self._inflight = asyncio.ensure_future(self._run(context, now))
        return await self._inflight

    def _cached_result(self, now: datetime) -> Optional[ClusterCheckResult]:
        state = self._state
        if state is None:
            return None
        if not isinstance(state.aggregate, ClusterCheckResult) or len(state.last_results) != len(self.probes):
            raise CheckStateError(
                "cached check state is inconsistent with registered probes",
                {"cached_results": len(state.last_results), "probes": len(self.probes)},
            )
        if now < state.next_check_at:
            return state.aggregate
        return None

    async def _run(self, context: CheckContext, now: datetime) -> ClusterCheckResult:
        results = []
        for probe in self.probes:
            result = await self._evaluate(probe, context)
            logger.debug("探针 %s: %r", probe.name, result)
            results.append(result)

        aggregate = aggregate_results(results)
        if aggregate.passed:
            self._backoff = self.initial_backoff
            next_check_at = now + self.check_interval
        else:
            next_check_at = now + self._backoff
            self._backoff = min(self._backoff * 2, self.check_interval)
            logger.info(
                "环境检查未通过: %s (%s),下次检查: %s",
                aggregate.check_status.value, aggregate.reason, next_check_at.isoformat(),
            )

        self._state = CachedCheckState(
            last_results=tuple(results),
            aggregate=aggregate,
            next_check_at=next_check_at,
        )
        self.runs += 1
        return aggregate

    async def _evaluate(self, probe: Probe, context: CheckContext) -> ClusterCheckResult:
        try:
            return await asyncio.wait_for(probe.evaluate(context), self.probe_timeout)
        except asyncio.TimeoutError:
            logger.warning("探针 %s 超时 (%ss)", probe.name, self.probe_timeout)
            return make_connection_failed_result(
                TimeoutError(f"{probe.name} timed out after {self.probe_timeout}s")
            )
        except Exception as e:
            logger.warning("探针 %s 执行失败: %s", probe.name, e)
            return probe.failure_result(e)

    def invalidate(self):
        """丢弃缓存,下次调用必定重新检查"""
        self._state = None

    def next_check_delay(self, now: Optional[datetime] = None) -> timedelta:
        """距离下次检查的时间,用于外层重新入队"""
        if self._state is None:
            return timedelta(0)
        now = now or self.clock()
        return max(self._state.next_check_at - now, timedelta(0))

    def __repr__(self) -> str:
        return (
            f"EnvironmentCheckScheduler(probes={len(self.probes)}, "
            f"runs={self.runs}, cache_hits={self.cache_hits})"
        )
