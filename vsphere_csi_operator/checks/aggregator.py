"""
检查结果聚合

按注册顺序扫描结果,保留严重级别最高的一个;
级别相同时先出现的结果胜出 (稳定归约)。
"""

from typing import Iterable

from .models import ClusterCheckResult, make_cluster_check_result_pass


def aggregate_results(results: Iterable[ClusterCheckResult]) -> ClusterCheckResult:
    """将一批检查结果归约为一个聚合结果

    Args:
        results: 按探针注册顺序排列的结果

    Returns:
        最严重的结果 (原样返回,保留其 reason 码);
        全部通过或为空时返回 PASS 结果
    """
    worst = None
    for result in results:
        if worst is None or result.action.is_more_severe_than(worst.action):
            worst = result

    if worst is None or worst.passed:
        return make_cluster_check_result_pass()
    return worst
