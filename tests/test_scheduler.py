#!/usr/bin/env python3
"""
测试环境检查调度器 (缓存、退避、超时、并发调用)
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import timedelta

import pytest

from testlib import FakeClock, StaticProbe, make_context
from vsphere_csi_operator.checks import (
    CachedCheckState,
    CheckStatus,
    EnvironmentCheckScheduler,
    make_cluster_check_result_pass,
    make_deprecated_environment_error,
)
from vsphere_csi_operator.checks.models import ClusterCheckResult, CheckAction
from vsphere_csi_operator.checks.probes import CheckContext, Probe
from vsphere_csi_operator.utils.errors import CheckStateError


def _deprecated():
    return make_deprecated_environment_error(CheckStatus.DEPRECATED_HW_VERSION, "vmx-13")


def _scheduler(*probes, clock=None, probe_timeout=30.0):
    return EnvironmentCheckScheduler(
        probes,
        check_interval=timedelta(minutes=10),
        initial_backoff=timedelta(minutes=1),
        probe_timeout=probe_timeout,
        clock=clock or FakeClock(),
    )


class RaisingProbe(Probe):
    name = "raising"

    def __init__(self, error, network_facing=True):
        self.error = error
        self.network_facing = network_facing

    async def evaluate(self, context: CheckContext) -> ClusterCheckResult:
        raise self.error


def test_cached_result_until_interval():
    """检查通过后,间隔内直接返回缓存"""
    clock = FakeClock()
    probe = StaticProbe(make_cluster_check_result_pass())
    scheduler = _scheduler(probe, clock=clock)
    context = make_context()

    first = asyncio.run(scheduler.get_or_run(context))
    assert first.passed
    assert probe.calls == 1

    clock.advance(minutes=9)
    second = asyncio.run(scheduler.get_or_run(context))
    assert second is first
    assert probe.calls == 1
    assert scheduler.cache_hits == 1

    clock.advance(minutes=1)
    asyncio.run(scheduler.get_or_run(context))
    assert probe.calls == 2
    assert scheduler.runs == 2


def test_force_bypasses_cache():
    probe = StaticProbe(make_cluster_check_result_pass())
    scheduler = _scheduler(probe)
    context = make_context()

    asyncio.run(scheduler.get_or_run(context))
    asyncio.run(scheduler.get_or_run(context, force=True))
    assert probe.calls == 2


def test_explicit_now_overrides_clock():
    clock = FakeClock()
    probe = StaticProbe(make_cluster_check_result_pass())
    scheduler = _scheduler(probe, clock=clock)
    context = make_context()

    asyncio.run(scheduler.get_or_run(context))
    asyncio.run(scheduler.get_or_run(context, now=clock.now + timedelta(hours=1)))
    assert probe.calls == 2


def test_backoff_doubles_and_caps():
    """失败后退避: 1m -> 2m -> 4m -> 8m -> 10m (上限)"""
    clock = FakeClock()
    probe = StaticProbe(_deprecated())
    scheduler = _scheduler(probe, clock=clock)
    context = make_context()

    delays = []
    for _ in range(6):
        asyncio.run(scheduler.get_or_run(context))
        delay = scheduler.next_check_delay()
        delays.append(delay)
        clock.advance(seconds=delay.total_seconds())

    print(f"  退避序列: {[d.total_seconds() for d in delays]}")
    assert delays == [
        timedelta(minutes=1),
        timedelta(minutes=2),
        timedelta(minutes=4),
        timedelta(minutes=8),
        timedelta(minutes=10),
        timedelta(minutes=10),
    ]


def test_backoff_resets_after_pass():
    clock = FakeClock()
    probe = StaticProbe(_deprecated())
    scheduler = _scheduler(probe, clock=clock)
    context = make_context()

    asyncio.run(scheduler.get_or_run(context))
    clock.advance(minutes=1)
    asyncio.run(scheduler.get_or_run(context))
    assert scheduler.next_check_delay() == timedelta(minutes=2)

    probe.result = make_cluster_check_result_pass()
    asyncio.run(scheduler.get_or_run(context, force=True))
    assert scheduler.next_check_delay() == timedelta(minutes=10)

    probe.result = _deprecated()
    asyncio.run(scheduler.get_or_run(context, force=True))
    assert scheduler.next_check_delay() == timedelta(minutes=1)


def test_failed_result_cached_during_backoff():
    clock = FakeClock()
    probe = StaticProbe(_deprecated())
    scheduler = _scheduler(probe, clock=clock)
    context = make_context()

    first = asyncio.run(scheduler.get_or_run(context))
    clock.advance(seconds=30)
    second = asyncio.run(scheduler.get_or_run(context))
    assert second is first
    assert probe.calls == 1


def test_probes_run_in_registration_order():
    """聚合按注册顺序: 同级别时前面的探针胜出"""
    first = StaticProbe(_deprecated(), name="first")
    second = StaticProbe(
        make_deprecated_environment_error(CheckStatus.DEPRECATED_VCENTER, "6.5.0"),
        name="second",
    )
    scheduler = _scheduler(first, second)

    result = asyncio.run(scheduler.get_or_run(make_context()))
    assert result.check_status == CheckStatus.DEPRECATED_HW_VERSION
    assert [r.check_status for r in scheduler.state.last_results] == [
        CheckStatus.DEPRECATED_HW_VERSION,
        CheckStatus.DEPRECATED_VCENTER,
    ]


def test_probe_timeout_is_connection_failure():
    slow = StaticProbe(make_cluster_check_result_pass(), name="slow", delay=1)
    scheduler = _scheduler(slow, probe_timeout=0.01)

    result = asyncio.run(scheduler.get_or_run(make_context()))
    print(f"  超时结果: {result!r}")
    assert result.check_status == CheckStatus.CONNECTION_FAILED
    assert isinstance(result.check_error, TimeoutError)


def test_probe_exception_becomes_result():
    """探针抛出的异常转换为检查结果"""
    vcenter_probe = RaisingProbe(RuntimeError("boom"))
    result = asyncio.run(_scheduler(vcenter_probe).get_or_run(make_context()))
    assert result.check_status == CheckStatus.VCENTER_API_ERROR
    assert result.action == CheckAction.BLOCK_UPGRADE

    network_probe = RaisingProbe(ConnectionResetError("reset"))
    result = asyncio.run(_scheduler(network_probe).get_or_run(make_context()))
    assert result.check_status == CheckStatus.CONNECTION_FAILED

    cluster_probe = RaisingProbe(RuntimeError("forbidden"), network_facing=False)
    result = asyncio.run(_scheduler(cluster_probe).get_or_run(make_context()))
    assert result.check_status == CheckStatus.OPENSHIFT_API_ERROR


def test_overlapping_calls_share_one_run():
    """并发调用只执行一轮探针"""
    probe = StaticProbe(make_cluster_check_result_pass(), delay=0.05)
    scheduler = _scheduler(probe)
    context = make_context()

    async def run_both():
        return await asyncio.gather(
            scheduler.get_or_run(context),
            scheduler.get_or_run(context, force=True),
        )

    first, second = asyncio.run(run_both())
    assert first is second
    assert probe.calls == 1
    assert scheduler.runs == 1


def test_cancellation_propagates():
    """发起方被取消时,本轮检查随之取消,不写入缓存"""
    probe = StaticProbe(make_cluster_check_result_pass(), delay=10)
    scheduler = _scheduler(probe)
    context = make_context()

    async def cancel_run():
        task = asyncio.ensure_future(scheduler.get_or_run(context))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(cancel_run())
    assert scheduler.runs == 0
    assert scheduler.state is None


def test_waiters_see_initiator_cancellation():
    """发起方被取消: 等待同一轮的调用方也收到 CancelledError"""
    probe = StaticProbe(make_cluster_check_result_pass(), delay=10)
    scheduler = _scheduler(probe)
    context = make_context()

    async def cancel_initiator():
        initiator = asyncio.ensure_future(scheduler.get_or_run(context))
        await asyncio.sleep(0.01)
        waiter = asyncio.ensure_future(scheduler.get_or_run(context))
        await asyncio.sleep(0.01)
        initiator.cancel()
        with pytest.raises(asyncio.CancelledError):
            await initiator
        with pytest.raises(asyncio.CancelledError):
            await waiter

    asyncio.run(cancel_initiator())
    assert scheduler.runs == 0
    assert probe.calls == 1


def test_waiter_cancellation_does_not_cancel_run():
    """等待方被取消不影响正在执行的一轮"""
    probe = StaticProbe(make_cluster_check_result_pass(), delay=0.05)
    scheduler = _scheduler(probe)
    context = make_context()

    async def cancel_waiter():
        initiator = asyncio.ensure_future(scheduler.get_or_run(context))
        await asyncio.sleep(0.01)
        waiter = asyncio.ensure_future(scheduler.get_or_run(context))
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        return await initiator

    result = asyncio.run(cancel_waiter())
    assert result.passed
    assert scheduler.runs == 1


def test_inconsistent_cache_raises():
    probe = StaticProbe(make_cluster_check_result_pass())
    scheduler = _scheduler(probe)
    context = make_context()
    asyncio.run(scheduler.get_or_run(context))

    # 探针数量与缓存结果不一致
    scheduler.probes.append(StaticProbe(make_cluster_check_result_pass(), name="extra"))
    with pytest.raises(CheckStateError):
        asyncio.run(scheduler.get_or_run(context))

    scheduler.invalidate()
    result = asyncio.run(scheduler.get_or_run(context))
    assert result.passed


def test_corrupted_aggregate_raises():
    clock = FakeClock()
    probe = StaticProbe(make_cluster_check_result_pass())
    scheduler = _scheduler(probe, clock=clock)
    scheduler._state = CachedCheckState(
        last_results=(make_cluster_check_result_pass(),),
        aggregate="not a result",
        next_check_at=clock.now + timedelta(minutes=5),
    )
    with pytest.raises(CheckStateError) as exc_info:
        asyncio.run(scheduler.get_or_run(make_context()))
    assert exc_info.value.code.value == "INVALID_CHECK_STATE"


def test_next_check_delay_without_state():
    scheduler = _scheduler(StaticProbe(make_cluster_check_result_pass()))
    assert scheduler.next_check_delay() == timedelta(0)


def test_initial_backoff_capped_by_interval():
    scheduler = EnvironmentCheckScheduler(
        [StaticProbe(_deprecated())],
        check_interval=timedelta(seconds=30),
        initial_backoff=timedelta(minutes=5),
        clock=FakeClock(),
    )
    asyncio.run(scheduler.get_or_run(make_context()))
    assert scheduler.next_check_delay() == timedelta(seconds=30)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
