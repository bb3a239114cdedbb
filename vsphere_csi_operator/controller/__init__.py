"""
控制器模块 - Condition 计算、状态发布与子控制器门控
"""

from .conditions import (
    ConditionStatus,
    OperatorCondition,
    OperatorStatus,
    UPGRADEABLE,
    AVAILABLE,
    ADMIN_ACK_REQUIRED,
    find_condition,
    set_condition,
    remove_condition,
    reconcile_condition,
    add_upgradeable_block_condition,
)
from .operator_client import (
    ManagementState,
    OperatorSpec,
    OperatorClient,
    InMemoryOperatorClient,
    update_status,
)
from .vsphere_controller import (
    VSphereController,
    StorageClassController,
    OperandController,
)

__all__ = [
    # Conditions
    "ConditionStatus",
    "OperatorCondition",
    "OperatorStatus",
    "UPGRADEABLE",
    "AVAILABLE",
    "ADMIN_ACK_REQUIRED",
    "find_condition",
    "set_condition",
    "remove_condition",
    "reconcile_condition",
    "add_upgradeable_block_condition",
    # 状态读写
    "ManagementState",
    "OperatorSpec",
    "OperatorClient",
    "InMemoryOperatorClient",
    "update_status",
    # 控制器
    "VSphereController",
    "StorageClassController",
    "OperandController",
]
