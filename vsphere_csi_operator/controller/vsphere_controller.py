"""
vSphere 控制器 - 环境检查驱动的子控制器门控

每个 tick:
1. 连接管理器提供 (或无法提供) vCenter 会话
2. 检查调度器决定使用缓存结果还是重新执行探针
3. 聚合结果映射为集群状态,更新 Condition (无变化不写入)
4. 门控: 决定是否启动驱动部署控制器、是否同步 StorageClass

驱动未安装过时遇到阻塞: 不安装驱动。
驱动已安装过时检查失败: 不停止已运行的驱动,不同步 StorageClass,
Condition 照常更新后返回降级错误。
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

from ..checks.migration import AdminAckLookup, check_cluster_status
from ..checks.models import ClusterCheckResult, ClusterCheckStatus
from ..checks.probes import CheckContext, default_probes
from ..checks.scheduler import EnvironmentCheckScheduler
from ..collectors.snapshot import KubeAPIInterface
from ..config import DRIVER_NAME, Settings
from ..utils.errors import CheckStateError, ClusterDegradedError
from ..vcenter.manager import ConnectionManager
from .conditions import (
    ADMIN_ACK_REQUIRED,
    AVAILABLE,
    UPGRADEABLE,
    ConditionStatus,
    OperatorCondition,
    OperatorStatus,
    find_condition,
    reconcile_condition,
    remove_condition,
    set_condition,
)
from .operator_client import ManagementState, OperatorClient, update_status

logger = logging.getLogger(__name__)

VSPHERE_PLATFORM = "VSphere"

# 驱动已安装时,这些状态视为回归: 返回降级错误
DEGRADING_WHEN_INSTALLED = (
    ClusterCheckStatus.UPGRADES_BLOCKED,
    ClusterCheckStatus.UPGRADE_STATE_UNKNOWN,
    ClusterCheckStatus.DEGRADED,
)

# 集群状态 -> Upgradeable Condition 状态
UPGRADEABLE_STATUS = {
    ClusterCheckStatus.ALL_GOOD: ConditionStatus.TRUE,
    ClusterCheckStatus.DRIVER_INSTALL_BLOCKED: ConditionStatus.TRUE,
    ClusterCheckStatus.UPGRADES_BLOCKED_VIA_ADMIN_ACK: ConditionStatus.TRUE,
    ClusterCheckStatus.UPGRADES_BLOCKED: ConditionStatus.FALSE,
    ClusterCheckStatus.UPGRADE_STATE_UNKNOWN: ConditionStatus.UNKNOWN,
    ClusterCheckStatus.DEGRADED: ConditionStatus.FALSE,
}


class StorageClassController(ABC):
    """StorageClass 子控制器"""

    @abstractmethod
    async def sync(self, connection, api: KubeAPIInterface) -> None:
        ...


class OperandController(ABC):
    """驱动部署子控制器 (Deployment / DaemonSet 等)"""

    @abstractmethod
    def start(self) -> None:
        """启动控制器 (只会被调用一次)"""


class VSphereController:
    """vSphere 环境检查控制器

    Example:
        controller = VSphereController(
            name="VMwareVSphereController",
            operator_client=client,
            api=snapshot,
            connection_manager=ConnectionManager(factory),
            storage_class_controller=sc_controller,
            operand_controllers=[driver_controller],
        )
        await controller.sync()
    """

    def __init__(
        self,
        name: str,
        operator_client: OperatorClient,
        api: KubeAPIInterface,
        connection_manager: ConnectionManager,
        storage_class_controller: StorageClassController,
        operand_controllers: Sequence[OperandController] = (),
        scheduler: Optional[EnvironmentCheckScheduler] = None,
        settings: Optional[Settings] = None,
        admin_ack: Optional[AdminAckLookup] = None,
    ):
        self.name = name
        self.operator_client = operator_client
        self.api = api
        self.connection_manager = connection_manager
        self.storage_class_controller = storage_class_controller
        self.operand_controllers: List[OperandController] = list(operand_controllers)
        self.settings = settings or Settings(controller_name=name)
        self.scheduler = scheduler or EnvironmentCheckScheduler(
            default_probes(),
            check_interval=self.settings.check_interval,
            initial_backoff=self.settings.initial_backoff,
            probe_timeout=self.settings.probe_timeout_seconds,
        )
        self.admin_ack = admin_ack

        self.operand_controller_started = False
        self.last_cluster_status: Optional[ClusterCheckStatus] = None
        self.last_result: Optional[ClusterCheckResult] = None

    async def sync(self, force_check: bool = False) -> None:
        """执行一次 tick

        Args:
            force_check: 忽略缓存,立即重新检查 (环境已知发生变化时使用)

        Raises:
            ClusterDegradedError: 集群降级 (驱动已安装但检查失败,或探针要求降级)
            CheckStateError: 检查缓存损坏,本轮放弃
        """
        spec, _, _ = self.operator_client.get_operator_state()
        if spec.management_state != ManagementState.MANAGED:
            logger.info("%s: managementState=%s,跳过", self.name, spec.management_state.value)
            return

        if not self._on_vsphere():
            return

        installed = self.api.driver_installed_by_operator(DRIVER_NAME)
        connection, result, _ = await self.connection_manager.connect()
        if connection is not None:
            context = CheckContext(api=self.api, connection=connection, settings=self.settings)
            try:
                result = await self.scheduler.get_or_run(context, force=force_check)
            except CheckStateError:
                logger.error("%s: 检查缓存损坏,丢弃缓存,下一轮重试", self.name)
                self.scheduler.invalidate()
                raise

        cluster_status, result = check_cluster_status(result, self.api, self.admin_ack)
        self.last_cluster_status = cluster_status
        self.last_result = result
        logger.info(
            "%s: 集群状态 %s (%s), 驱动已安装=%s",
            self.name, cluster_status.value, result.check_status.value, installed,
        )

        # 先发布 Condition,降级时也反映本轮检查结果
        self._publish_conditions(cluster_status, result)

        if installed and cluster_status in DEGRADING_WHEN_INSTALLED:
            # 已运行的驱动保持运行,但不再创建 StorageClass
            self._start_operand_controllers()
            raise ClusterDegradedError(result, {"controller": self.name})

        if cluster_status == ClusterCheckStatus.DEGRADED:
            raise ClusterDegradedError(result, {"controller": self.name})

        if cluster_status == ClusterCheckStatus.ALL_GOOD:
            self._start_operand_controllers()
            await self.storage_class_controller.sync(connection, self.api)
        elif installed and cluster_status == ClusterCheckStatus.UPGRADES_BLOCKED_VIA_ADMIN_ACK:
            self._start_operand_controllers()
        else:
            logger.info("%s: %s,不安装驱动", self.name, result.message or cluster_status.value)

    def next_resync_delay(self) -> timedelta:
        """外层重新入队的延迟"""
        return self.scheduler.next_check_delay()

    async def close(self):
        await self.connection_manager.close()

    def _on_vsphere(self) -> bool:
        infra = self.api.get_infrastructure()
        if infra is None:
            return True
        status = infra.get("status", {})
        platform = (status.get("platformStatus") or {}).get("type") or status.get("platform", "")
        if platform and platform != VSPHERE_PLATFORM:
            logger.info("%s: 平台为 %s,跳过", self.name, platform)
            return False
        return True

    def _start_operand_controllers(self):
        if self.operand_controller_started:
            return
        for controller in self.operand_controllers:
            controller.start()
        self.operand_controller_started = True
        logger.info("%s: 已启动驱动部署控制器", self.name)

    def _desired_conditions(
        self,
        cluster_status: ClusterCheckStatus,
        result: ClusterCheckResult,
        status: OperatorStatus,
    ) -> Tuple[List[OperatorCondition], List[str], bool]:
        """计算需要设置 / 删除的 Condition

        Returns:
            (设置的 Condition, 删除的 Condition 类型, 是否有变化)
        """
        conditions = []
        modified = False

        available, changed = self._available_condition(status)
        conditions.append(available)
        modified = modified or changed

        upgradeable_type = self.name + UPGRADEABLE
        upgradeable, changed = reconcile_condition(
            result,
            find_condition(status.conditions, upgradeable_type),
            upgradeable_type,
            UPGRADEABLE_STATUS[cluster_status],
        )
        conditions.append(upgradeable)
        modified = modified or changed

        ack_type = self.name + ADMIN_ACK_REQUIRED
        existing_ack = find_condition(status.conditions, ack_type)
        removed = []
        if cluster_status == ClusterCheckStatus.UPGRADES_BLOCKED_VIA_ADMIN_ACK:
            ack, changed = reconcile_condition(result, existing_ack, ack_type, ConditionStatus.TRUE)
            conditions.append(ack)
            modified = modified or changed
        elif existing_ack is not None:
            removed.append(ack_type)
            modified = True

        return conditions, removed, modified

    def _available_condition(self, status: OperatorStatus) -> Tuple[OperatorCondition, bool]:
        condition_type = self.name + AVAILABLE
        existing = find_condition(status.conditions, condition_type)
        if existing is not None and existing.status == ConditionStatus.TRUE:
            return existing, False
        return OperatorCondition(
            type=condition_type,
            status=ConditionStatus.TRUE,
            reason="AsExpected",
        ), True

    def _publish_conditions(self, cluster_status: ClusterCheckStatus, result: ClusterCheckResult):
        _, status, _ = self.operator_client.get_operator_state()
        conditions, removed, modified = self._desired_conditions(cluster_status, result, status)
        if not modified:
            return

        def apply(current: OperatorStatus) -> OperatorStatus:
            updated = current.conditions
            for condition in conditions:
                updated = set_condition(updated, condition)
            for condition_type in removed:
                updated = remove_condition(updated, condition_type)
            return OperatorStatus(conditions=updated)

        update_status(self.operator_client, apply)
        logger.info(
            "%s: 已更新 Conditions: %s",
            self.name, ", ".join(f"{c.type}={c.status.value}" for c in conditions),
        )
