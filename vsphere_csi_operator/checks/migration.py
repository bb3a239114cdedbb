"""
集群状态评估

将聚合检查结果映射为 ClusterCheckStatus。需要管理员确认的阻塞
(BLOCK_UPGRADE_VIA_ADMIN_ACK) 先经过迁移就绪检查: 集群中没有
in-tree vSphere 卷时可以直接放行。
"""

import logging
from typing import Callable, Optional, Tuple

from ..collectors.snapshot import KubeAPIInterface
from ..config import INTREE_PLUGIN_NAME, MIGRATION_DRIVER_SETTING
from .models import (
    CheckAction,
    CheckStatus,
    ClusterCheckResult,
    ClusterCheckStatus,
    make_cluster_check_result_pass,
)

logger = logging.getLogger(__name__)

# 管理员确认查询: CheckStatus -> 是否已确认
AdminAckLookup = Callable[[CheckStatus], bool]


def is_migration_enabled(api: KubeAPIInterface) -> bool:
    storage = api.get_storage() or {}
    driver_setting = storage.get("spec", {}).get("vsphereStorageDriver", "")
    return driver_setting == MIGRATION_DRIVER_SETTING


def count_intree_volumes(api: KubeAPIInterface) -> int:
    """由 in-tree vSphere 插件创建的 PV 数量"""
    return sum(
        1 for pv in api.list_persistent_volumes()
        if pv.get("spec", {}).get("vsphereVolume")
    )


def nodes_with_inline_volumes(api: KubeAPIInterface) -> list:
    """正在使用 in-tree vSphere 卷的节点名称"""
    prefix = INTREE_PLUGIN_NAME + "/"
    names = []
    for node in api.list_nodes():
        volumes_in_use = node.get("status", {}).get("volumesInUse") or []
        if any(volume.startswith(prefix) for volume in volumes_in_use):
            names.append(node.get("metadata", {}).get("name", ""))
    return names


def check_for_intree_plugin_use(
    result: ClusterCheckResult,
    api: KubeAPIInterface,
) -> Tuple[ClusterCheckStatus, ClusterCheckResult]:
    """迁移就绪检查

    Args:
        result: 触发检查的结果 (通常是 BUGGY_MIGRATION_PLATFORM)
        api: 集群只读访问接口

    Returns:
        (ALL_GOOD, PASS 结果): 已启用迁移,或没有任何 in-tree 卷
        (UPGRADES_BLOCKED_VIA_ADMIN_ACK, 新结果): 仍存在 in-tree PV 或内联卷
    """
    try:
        if is_migration_enabled(api):
            logger.info("已启用 CSI 迁移,放行: %s", result.check_status.value)
            return ClusterCheckStatus.ALL_GOOD, make_cluster_check_result_pass()

        pv_count = count_intree_volumes(api)
        inline_nodes = nodes_with_inline_volumes(api)
    except Exception as e:
        # 无法确认卷状态时保留阻塞
        logger.warning("迁移就绪检查失败,保留升级阻塞: %s", e)
        return ClusterCheckStatus.UPGRADES_BLOCKED_VIA_ADMIN_ACK, result

    if pv_count == 0 and not inline_nodes:
        logger.info("集群中没有 in-tree vSphere 卷,放行: %s", result.check_status.value)
        return ClusterCheckStatus.ALL_GOOD, make_cluster_check_result_pass()

    details = []
    if pv_count:
        details.append(f"{pv_count} in-tree vSphere persistent volumes")
    if inline_nodes:
        details.append(f"inline vSphere volumes in use on nodes {', '.join(inline_nodes)}")
    reason = f"{result.reason}; found {' and '.join(details)}"

    blocked = ClusterCheckResult(
        check_status=CheckStatus.INTREE_PLUGIN_IN_USE,
        action=result.action,
        reason=reason,
        check_error=result.check_error,
        blocked_message=(
            f"Upgrades require administrator acknowledgment because {reason}"
        ),
    )
    return ClusterCheckStatus.UPGRADES_BLOCKED_VIA_ADMIN_ACK, blocked


def check_cluster_status(
    result: ClusterCheckResult,
    api: KubeAPIInterface,
    admin_ack: Optional[AdminAckLookup] = None,
) -> Tuple[ClusterCheckStatus, ClusterCheckResult]:
    """将聚合结果映射为集群状态

    Args:
        result: 聚合后的检查结果
        api: 集群只读访问接口
        admin_ack: 管理员确认查询,只在 BLOCK_UPGRADE 时使用

    Returns:
        (ClusterCheckStatus, 最终结果)
    """
    if result.action == CheckAction.DEGRADE:
        return ClusterCheckStatus.DEGRADED, result

    # 连不上 vCenter 时无法判断是否可以升级
    if result.check_status == CheckStatus.CONNECTION_FAILED:
        return ClusterCheckStatus.UPGRADE_STATE_UNKNOWN, result

    if result.action == CheckAction.BLOCK_UPGRADE_VIA_ADMIN_ACK:
        return check_for_intree_plugin_use(result, api)

    if result.action == CheckAction.BLOCK_UPGRADE:
        if admin_ack is not None and admin_ack(result.check_status):
            logger.info("管理员已确认 %s,改为需确认的升级阻塞", result.check_status.value)
            return ClusterCheckStatus.UPGRADES_BLOCKED_VIA_ADMIN_ACK, result
        return ClusterCheckStatus.UPGRADES_BLOCKED, result

    if result.action == CheckAction.BLOCK_UPGRADE_DRIVER_INSTALL:
        return ClusterCheckStatus.DRIVER_INSTALL_BLOCKED, result

    return ClusterCheckStatus.ALL_GOOD, result
