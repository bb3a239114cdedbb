"""
环境检查数据模型定义

使用枚举和不可变 dataclass（而非 Pydantic）表示检查结果
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class CheckStatus(str, Enum):
    """检查状态枚举

    值同时作为 Condition 的 Reason 展示给运维人员
    """
    PASS = "CheckPassed"
    CONNECTION_FAILED = "VSphereConnectionFailed"
    DEPRECATED_VCENTER = "CheckDeprecatedVCenter"
    DEPRECATED_HW_VERSION = "CheckDeprecatedHWVersion"
    DEPRECATED_ESXI_VERSION = "CheckDeprecatedESXIVersion"
    BUGGY_MIGRATION_PLATFORM = "BuggyVSphereMigrationPlatform"
    INTREE_PLUGIN_IN_USE = "IntreeVSpherePluginInUse"
    EXISTING_DRIVER_FOUND = "ExistingDriverFound"
    VCENTER_API_ERROR = "VCenterAPIError"
    OPENSHIFT_API_ERROR = "OpenshiftAPIError"


class CheckAction(str, Enum):
    """检查动作 (严重级别)

    比较严重程度时只使用 rank,不依赖枚举声明顺序。
    """
    PASS = "Pass"
    # 已存在第三方 CSI 驱动: 不安装本驱动,但不阻塞升级
    BLOCK_UPGRADE_DRIVER_INSTALL = "BlockUpgradeDriverInstall"
    BLOCK_UPGRADE = "BlockUpgrade"
    BLOCK_UPGRADE_VIA_ADMIN_ACK = "BlockUpgradeViaAdminAck"
    DEGRADE = "Degrade"

    @property
    def rank(self) -> int:
        return ACTION_RANKS[self]

    def is_more_severe_than(self, other: "CheckAction") -> bool:
        return self.rank > other.rank


ACTION_RANKS: Dict[CheckAction, int] = {
    CheckAction.PASS: 0,
    CheckAction.BLOCK_UPGRADE_DRIVER_INSTALL: 10,
    CheckAction.BLOCK_UPGRADE: 20,
    CheckAction.BLOCK_UPGRADE_VIA_ADMIN_ACK: 30,
    CheckAction.DEGRADE: 40,
}


class ClusterCheckStatus(str, Enum):
    """集群聚合状态 (由最严重的检查结果推导)"""
    ALL_GOOD = "AllGood"
    UPGRADES_BLOCKED = "UpgradesBlocked"
    UPGRADES_BLOCKED_VIA_ADMIN_ACK = "UpgradesBlockedViaAdminAck"
    UPGRADE_STATE_UNKNOWN = "UpgradeStateUnknown"
    DRIVER_INSTALL_BLOCKED = "DriverInstallBlocked"
    DEGRADED = "ClusterDegraded"


@dataclass(frozen=True)
class ClusterCheckResult:
    """单个检查 (或一批检查聚合后) 的结果

    Attributes:
        check_status: 具体的检查状态
        action: 严重级别
        reason: 人类可读的原因
        check_error: 原始异常 (可选)
        blocked_message: 阻塞升级时展示的附加消息 (可选)
    """
    check_status: CheckStatus
    action: CheckAction
    reason: str = ""
    check_error: Optional[BaseException] = None
    blocked_message: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.action == CheckAction.PASS

    @property
    def message(self) -> str:
        """Condition 消息: 优先使用 blocked_message"""
        return self.blocked_message or self.reason

    def __repr__(self) -> str:
        return (
            f"ClusterCheckResult(status={self.check_status.value}, "
            f"action={self.action.value}, reason={self.reason!r})"
        )


def make_cluster_check_result_pass() -> ClusterCheckResult:
    return ClusterCheckResult(check_status=CheckStatus.PASS, action=CheckAction.PASS)


def make_deprecated_environment_error(
    status: CheckStatus,
    reason: str,
    error: Optional[BaseException] = None,
) -> ClusterCheckResult:
    """环境版本过旧: 阻塞升级"""
    return ClusterCheckResult(
        check_status=status,
        action=CheckAction.BLOCK_UPGRADE,
        reason=reason,
        check_error=error,
        blocked_message=f"Marking cluster un-upgradeable because {reason}",
    )


def make_buggy_environment_error(
    status: CheckStatus,
    error: BaseException,
) -> ClusterCheckResult:
    """平台存在已知 CSI 迁移缺陷: 需要管理员确认后才能升级"""
    reason = f"VSphere CSI migration is not supported on this platform: {error}"
    return ClusterCheckResult(
        check_status=status,
        action=CheckAction.BLOCK_UPGRADE_VIA_ADMIN_ACK,
        reason=reason,
        check_error=error,
        blocked_message=f"Upgrades require administrator acknowledgment because {reason}",
    )


def make_generic_vcenter_api_error(error: BaseException) -> ClusterCheckResult:
    reason = f"Failed to query vCenter API: {error}"
    return ClusterCheckResult(
        check_status=CheckStatus.VCENTER_API_ERROR,
        action=CheckAction.BLOCK_UPGRADE,
        reason=reason,
        check_error=error,
        blocked_message=f"Marking cluster un-upgradeable because {reason}",
    )


def make_openshift_api_error(error: BaseException) -> ClusterCheckResult:
    reason = f"Failed to query cluster API: {error}"
    return ClusterCheckResult(
        check_status=CheckStatus.OPENSHIFT_API_ERROR,
        action=CheckAction.BLOCK_UPGRADE,
        reason=reason,
        check_error=error,
        blocked_message=f"Marking cluster un-upgradeable because {reason}",
    )


def make_connection_failed_result(error: BaseException) -> ClusterCheckResult:
    return ClusterCheckResult(
        check_status=CheckStatus.CONNECTION_FAILED,
        action=CheckAction.BLOCK_UPGRADE,
        reason=f"Failed to connect to vSphere: {error}",
        check_error=error,
    )


def make_existing_driver_result(reason: str) -> ClusterCheckResult:
    return ClusterCheckResult(
        check_status=CheckStatus.EXISTING_DRIVER_FOUND,
        action=CheckAction.BLOCK_UPGRADE_DRIVER_INSTALL,
        reason=reason,
        blocked_message=f"Not installing the vSphere CSI driver because {reason}",
    )
