"""
检查模块 - vSphere 环境检查与结果聚合
"""

from .models import (
    CheckStatus,
    CheckAction,
    ClusterCheckStatus,
    ClusterCheckResult,
    ACTION_RANKS,
    make_cluster_check_result_pass,
    make_deprecated_environment_error,
    make_buggy_environment_error,
    make_generic_vcenter_api_error,
    make_openshift_api_error,
    make_connection_failed_result,
    make_existing_driver_result,
)
from .aggregator import aggregate_results
from .probes import (
    CheckContext,
    Probe,
    ConnectivityProbe,
    VCenterVersionProbe,
    HostVersionProbe,
    NodeHardwareVersionProbe,
    ExistingDriverProbe,
    default_probes,
)
from .migration import check_for_intree_plugin_use, check_cluster_status
from .scheduler import EnvironmentCheckScheduler, CachedCheckState

__all__ = [
    # 模型
    "CheckStatus",
    "CheckAction",
    "ClusterCheckStatus",
    "ClusterCheckResult",
    "ACTION_RANKS",
    "make_cluster_check_result_pass",
    "make_deprecated_environment_error",
    "make_buggy_environment_error",
    "make_generic_vcenter_api_error",
    "make_openshift_api_error",
    "make_connection_failed_result",
    "make_existing_driver_result",
    # 聚合
    "aggregate_results",
    # 探针
    "CheckContext",
    "Probe",
    "ConnectivityProbe",
    "VCenterVersionProbe",
    "HostVersionProbe",
    "NodeHardwareVersionProbe",
    "ExistingDriverProbe",
    "default_probes",
    # 集群状态
    "check_for_intree_plugin_use",
    "check_cluster_status",
    # 调度
    "EnvironmentCheckScheduler",
    "CachedCheckState",
]
