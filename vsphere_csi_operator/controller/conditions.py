"""
Operator Condition 计算

根据检查结果计算下一个 Condition 值,以及是否需要写入。
原因和状态都没有变化时返回原 Condition,避免无意义的状态更新,
同时保留外部设置的字段。
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..checks.models import ClusterCheckResult

# Condition 类型后缀
UPGRADEABLE = "Upgradeable"
AVAILABLE = "Available"
ADMIN_ACK_REQUIRED = "AdminAckRequired"


class ConditionStatus(str, Enum):
    """Condition 三态"""
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OperatorCondition(BaseModel):
    """Operator 发布的状态条件"""

    model_config = ConfigDict(frozen=True)

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = Field(default_factory=_now)


class OperatorStatus(BaseModel):
    """Operator 状态 (只包含 conditions)"""

    conditions: List[OperatorCondition] = Field(default_factory=list)


def find_condition(conditions: List[OperatorCondition], condition_type: str) -> Optional[OperatorCondition]:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(conditions: List[OperatorCondition], new: OperatorCondition) -> List[OperatorCondition]:
    """替换同类型 Condition,不存在时追加"""
    updated = [c for c in conditions if c.type != new.type]
    updated.append(new)
    return updated


def remove_condition(conditions: List[OperatorCondition], condition_type: str) -> List[OperatorCondition]:
    return [c for c in conditions if c.type != condition_type]


def reconcile_condition(
    result: ClusterCheckResult,
    existing: Optional[OperatorCondition],
    condition_type: str,
    condition_status: ConditionStatus,
) -> Tuple[OperatorCondition, bool]:
    """计算下一个 Condition

    Args:
        result: 聚合检查结果,reason 取 check_status
        existing: 当前同类型 Condition (可能不存在)
        condition_type: Condition 类型
        condition_status: 期望的状态

    Returns:
        (Condition, modified)
    """
    reason = result.check_status.value
    if existing is None:
        return OperatorCondition(
            type=condition_type,
            status=condition_status,
            reason=reason,
            message=result.message,
        ), True

    if existing.reason == reason and existing.status == condition_status:
        return existing, False

    # 状态未变化时保留原来的 transition 时间
    transition_time = existing.last_transition_time
    if existing.status != condition_status:
        transition_time = _now()

    return OperatorCondition(
        type=existing.type,
        status=condition_status,
        reason=reason,
        message=result.message,
        last_transition_time=transition_time,
    ), True


def add_upgradeable_block_condition(
    result: ClusterCheckResult,
    controller_name: str,
    status: OperatorStatus,
    condition_status: ConditionStatus,
) -> Tuple[OperatorCondition, bool]:
    """计算 <controller_name>Upgradeable Condition"""
    condition_type = controller_name + UPGRADEABLE
    existing = find_condition(status.conditions, condition_type)
    return reconcile_condition(result, existing, condition_type, condition_status)
