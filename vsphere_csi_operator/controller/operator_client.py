"""
Operator 状态读写

状态写入采用乐观并发: 携带读取时的 resourceVersion,
版本过期时抛出 ConflictError,由 update_status 重试整个读-改-写。
"""

import copy
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional, Tuple

from pydantic import BaseModel

from ..utils.errors import ConflictError
from ..utils.retry import retry_on_conflict
from .conditions import OperatorStatus

StatusMutator = Callable[[OperatorStatus], OperatorStatus]


class ManagementState(str, Enum):
    MANAGED = "Managed"
    UNMANAGED = "Unmanaged"
    REMOVED = "Removed"


class OperatorSpec(BaseModel):
    management_state: ManagementState = ManagementState.MANAGED


class OperatorClient(ABC):
    """Operator CR 访问接口"""

    @abstractmethod
    def get_operator_state(self) -> Tuple[OperatorSpec, OperatorStatus, str]:
        """返回 (spec, status, resource_version)"""

    @abstractmethod
    def update_operator_status(self, resource_version: str, status: OperatorStatus) -> str:
        """写入状态,返回新的 resource_version

        Raises:
            ConflictError: resource_version 已过期
        """


class InMemoryOperatorClient(OperatorClient):
    """内存中的 Operator CR

    Attributes:
        updates: 成功写入次数
    """

    def __init__(
        self,
        spec: Optional[OperatorSpec] = None,
        status: Optional[OperatorStatus] = None,
    ):
        self._spec = spec or OperatorSpec()
        self._status = status or OperatorStatus()
        self._version = 1
        self._lock = threading.Lock()
        self.updates = 0

    def get_operator_state(self) -> Tuple[OperatorSpec, OperatorStatus, str]:
        with self._lock:
            return (
                self._spec.model_copy(),
                copy.deepcopy(self._status),
                str(self._version),
            )

    def update_operator_status(self, resource_version: str, status: OperatorStatus) -> str:
        with self._lock:
            if resource_version != str(self._version):
                raise ConflictError(
                    "operator status has been modified",
                    expected_version=resource_version,
                    actual_version=str(self._version),
                )
            self._status = copy.deepcopy(status)
            self._version += 1
            self.updates += 1
            return str(self._version)

    def set_spec(self, spec: OperatorSpec):
        with self._lock:
            self._spec = spec
            self._version += 1


@retry_on_conflict()
def update_status(client: OperatorClient, *mutators: StatusMutator) -> OperatorStatus:
    """读取最新状态,依次应用 mutator 后写回

    Args:
        client: Operator CR 访问接口
        *mutators: OperatorStatus -> OperatorStatus

    Returns:
        写入后的状态
    """
    _, status, resource_version = client.get_operator_state()
    for mutate in mutators:
        status = mutate(status)
    client.update_operator_status(resource_version, status)
    return status
