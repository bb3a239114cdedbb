"""
工具模块
"""

from .errors import (
    OperatorError,
    OperatorErrorCode,
    VCenterConnectionError,
    VCenterAuthenticationError,
    ClusterDegradedError,
    CheckStateError,
    ConflictError,
    ConfigurationError,
    CONNECTIVITY_ERRORS,
    is_connectivity_error,
)
from .retry import retry_on_conflict

__all__ = [
    "OperatorError",
    "OperatorErrorCode",
    "VCenterConnectionError",
    "VCenterAuthenticationError",
    "ClusterDegradedError",
    "CheckStateError",
    "ConflictError",
    "ConfigurationError",
    "CONNECTIVITY_ERRORS",
    "is_connectivity_error",
    "retry_on_conflict",
]
