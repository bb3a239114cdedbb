"""
收集器模块 - 集群只读数据访问
"""

from .k8s_client import KubectlWrapper, SNAPSHOT_RESOURCES
from .snapshot import ClusterSnapshot, KubeAPIInterface

__all__ = [
    "KubectlWrapper",
    "SNAPSHOT_RESOURCES",
    "ClusterSnapshot",
    "KubeAPIInterface",
]
