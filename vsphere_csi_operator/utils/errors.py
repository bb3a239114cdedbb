"""
Operator 错误类型定义

提供结构化的错误处理机制
"""

from enum import Enum
from typing import Dict, Any, Optional


class OperatorErrorCode(Enum):
    """Operator 错误码枚举"""

    # 连接类错误
    CONNECTION_FAILED = "CONNECTION_FAILED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    TIMEOUT = "TIMEOUT"

    # 集群状态类错误
    CLUSTER_DEGRADED = "CLUSTER_DEGRADED"
    INVALID_CHECK_STATE = "INVALID_CHECK_STATE"

    # API 类错误
    API_ERROR = "API_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFLICT = "CONFLICT"

    # 配置类错误
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # 未知错误
    UNKNOWN = "UNKNOWN"


class OperatorError(Exception):
    """Operator 异常基类

    提供结构化的错误信息,便于日志记录和错误处理

    Attributes:
        message: 错误消息
        code: 错误码
        details: 额外的错误详情
    """

    def __init__(
        self,
        message: str,
        code: OperatorErrorCode = OperatorErrorCode.UNKNOWN,
        details: Optional[Dict[str, Any]] = None
    ):
        """初始化 Operator 错误

        Args:
            message: 错误描述信息
            code: 错误码
            details: 额外的错误详情 (如资源名、vCenter 地址等)
        """
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式

        Returns:
            包含完整错误信息的字典
        """
        return {
            "error": self.message,
            "code": self.code.value,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.value}] {self.message} ({details_str})"
        return f"[{self.code.value}] {self.message}"


class VCenterConnectionError(OperatorError):
    """vCenter 连接错误

    传输层失败 (DNS、TCP、TLS 等)
    """

    def __init__(
        self,
        message: str,
        server: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        all_details = details or {}
        if server:
            all_details["server"] = server

        super().__init__(message, OperatorErrorCode.CONNECTION_FAILED, all_details)


class VCenterAuthenticationError(OperatorError):
    """vCenter 认证失败 (用户名/密码错误、会话过期)"""

    def __init__(
        self,
        message: str,
        server: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        all_details = details or {}
        if server:
            all_details["server"] = server

        super().__init__(message, OperatorErrorCode.AUTHENTICATION_FAILED, all_details)


class ClusterDegradedError(OperatorError):
    """集群降级错误

    仅在驱动已被安装、但环境检查失败时返回给外层调度器。

    Attributes:
        result: 触发降级的 ClusterCheckResult
    """

    def __init__(self, result, details: Optional[Dict[str, Any]] = None):
        """初始化降级错误

        Args:
            result: 触发降级的检查结果
            details: 额外详情
        """
        self.result = result
        all_details = details or {}
        all_details["check_status"] = result.check_status.value

        message = result.reason
        if result.check_error is not None:
            message = str(result.check_error)

        super().__init__(message, OperatorErrorCode.CLUSTER_DEGRADED, all_details)


class CheckStateError(OperatorError):
    """检查缓存状态异常 (程序错误)

    本轮 tick 放弃执行,下一轮重试。
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, OperatorErrorCode.INVALID_CHECK_STATE, details)


class ConflictError(OperatorError):
    """Operator 状态写入冲突 (resourceVersion 已过期)"""

    def __init__(
        self,
        message: str,
        expected_version: Optional[str] = None,
        actual_version: Optional[str] = None
    ):
        details = {}
        if expected_version is not None:
            details["expected_version"] = expected_version
        if actual_version is not None:
            details["actual_version"] = actual_version

        super().__init__(message, OperatorErrorCode.CONFLICT, details)


class ConfigurationError(OperatorError):
    """配置错误

    用于环境变量或配置项校验失败
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, OperatorErrorCode.CONFIGURATION_ERROR, details)


# 传输层与认证类失败: 归类为 vCenter 连接失败
CONNECTIVITY_ERRORS = (
    VCenterConnectionError,
    VCenterAuthenticationError,
    ConnectionError,
    TimeoutError,
    OSError,
)

CONNECTIVITY_ERROR_CODES = (
    OperatorErrorCode.CONNECTION_FAILED,
    OperatorErrorCode.AUTHENTICATION_FAILED,
    OperatorErrorCode.TIMEOUT,
)


def is_connectivity_error(error: BaseException) -> bool:
    """判断异常是否属于 vCenter 连接失败

    Args:
        error: 任意异常

    Returns:
        传输层、认证或超时类失败返回 True
    """
    if isinstance(error, CONNECTIVITY_ERRORS):
        return True
    return isinstance(error, OperatorError) and error.code in CONNECTIVITY_ERROR_CODES
