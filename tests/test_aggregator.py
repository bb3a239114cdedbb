#!/usr/bin/env python3
"""
测试检查结果聚合 (严重级别排序与稳定归约)
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vsphere_csi_operator.checks import (
    ACTION_RANKS,
    CheckAction,
    CheckStatus,
    aggregate_results,
    make_buggy_environment_error,
    make_cluster_check_result_pass,
    make_connection_failed_result,
    make_deprecated_environment_error,
    make_existing_driver_result,
)
from vsphere_csi_operator.checks.models import ClusterCheckResult


def test_action_rank_order():
    """严重级别: PASS < 驱动安装阻塞 < 升级阻塞 < 需确认阻塞 < 降级"""
    ordered = [
        CheckAction.PASS,
        CheckAction.BLOCK_UPGRADE_DRIVER_INSTALL,
        CheckAction.BLOCK_UPGRADE,
        CheckAction.BLOCK_UPGRADE_VIA_ADMIN_ACK,
        CheckAction.DEGRADE,
    ]
    ranks = [a.rank for a in ordered]
    assert ranks == sorted(ranks)
    assert len(set(ranks)) == len(ranks)
    assert set(ACTION_RANKS) == set(CheckAction)

    assert CheckAction.DEGRADE.is_more_severe_than(CheckAction.BLOCK_UPGRADE)
    assert not CheckAction.BLOCK_UPGRADE.is_more_severe_than(CheckAction.BLOCK_UPGRADE)


def test_empty_results_pass():
    result = aggregate_results([])
    assert result.passed
    assert result.check_status == CheckStatus.PASS


def test_all_pass():
    result = aggregate_results([make_cluster_check_result_pass() for _ in range(3)])
    assert result.passed


def test_most_severe_wins():
    """最严重的结果原样返回,保留 reason 码"""
    deprecated = make_deprecated_environment_error(
        CheckStatus.DEPRECATED_VCENTER, "found older vcenter version 6.5.0, expected is 6.7.3"
    )
    buggy = make_buggy_environment_error(
        CheckStatus.BUGGY_MIGRATION_PLATFORM, ValueError("vcenter 7.0.1")
    )
    existing = make_existing_driver_result("found existing unsupported driver")

    result = aggregate_results([
        make_cluster_check_result_pass(), existing, deprecated, buggy,
    ])
    print(f"  聚合结果: {result!r}")
    assert result is buggy
    assert result.check_status == CheckStatus.BUGGY_MIGRATION_PLATFORM


def test_equal_severity_first_wins():
    """级别相同时先出现的结果胜出"""
    first = make_connection_failed_result(ConnectionError("refused"))
    second = make_deprecated_environment_error(CheckStatus.DEPRECATED_HW_VERSION, "vmx-13")

    assert aggregate_results([first, second]) is first
    assert aggregate_results([second, first]) is second


def test_degrade_beats_everything():
    degrade = ClusterCheckResult(
        check_status=CheckStatus.VCENTER_API_ERROR,
        action=CheckAction.DEGRADE,
        reason="unrecoverable",
    )
    buggy = make_buggy_environment_error(CheckStatus.BUGGY_MIGRATION_PLATFORM, ValueError("x"))
    assert aggregate_results([buggy, degrade]) is degrade


def test_result_message_prefers_blocked_message():
    result = make_deprecated_environment_error(CheckStatus.DEPRECATED_VCENTER, "too old")
    assert result.message == "Marking cluster un-upgradeable because too old"

    connection_failed = make_connection_failed_result(ConnectionError("refused"))
    assert connection_failed.message == connection_failed.reason


if __name__ == "__main__":
    test_action_rank_order()
    test_empty_results_pass()
    test_all_pass()
    test_most_severe_wins()
    test_equal_severity_first_wins()
    test_degrade_beats_everything()
    test_result_message_prefers_blocked_message()
    print("\n✅ 聚合测试通过")
