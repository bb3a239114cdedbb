"""
环境检查探针

每个探针只实现一个 evaluate 操作,返回 ClusterCheckResult:
- 不修改任何集群状态
- 探针内部的失败转换为检查结果,不向外抛出原始异常
- 注册顺序是显式列表 (default_probes),决定聚合时的优先级
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from packaging.version import InvalidVersion, Version

from ..collectors.snapshot import KubeAPIInterface
from ..config import DRIVER_NAME, Settings
from ..utils.errors import is_connectivity_error
from .aggregator import aggregate_results
from .models import (
    CheckStatus,
    ClusterCheckResult,
    make_buggy_environment_error,
    make_cluster_check_result_pass,
    make_connection_failed_result,
    make_deprecated_environment_error,
    make_existing_driver_result,
    make_generic_vcenter_api_error,
    make_openshift_api_error,
)

logger = logging.getLogger(__name__)

_HW_VERSION_PATTERN = re.compile(r"^vmx-(\d+)$")


@dataclass
class CheckContext:
    """传递给探针的只读依赖

    Attributes:
        api: 集群只读访问接口
        connection: 已登录的 vCenter 会话 (连接失败时为 None)
        settings: 版本阈值等配置
    """
    api: KubeAPIInterface
    connection: Optional[Any]
    settings: Settings


class Probe(ABC):
    """探针基类"""

    name: str = "probe"
    # 访问 vCenter 的探针: 失败归类为连接失败
    network_facing: bool = True

    @abstractmethod
    async def evaluate(self, context: CheckContext) -> ClusterCheckResult:
        """执行检查"""

    def failure_result(self, error: BaseException) -> ClusterCheckResult:
        """探针内部异常 -> 检查结果"""
        if self.network_facing:
            if is_connectivity_error(error):
                return make_connection_failed_result(error)
            return make_generic_vcenter_api_error(error)
        return make_openshift_api_error(error)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"


def _parse_version(raw: str) -> Version:
    # vCenter 可能返回 "7.0.2 build-17694817" 之类的字符串
    return Version(raw.strip().split()[0])


class ConnectivityProbe(Probe):
    """vCenter 会话往返检查"""

    name = "vcenter_connectivity"

    async def evaluate(self, context: CheckContext) -> ClusterCheckResult:
        if context.connection is None:
            return make_connection_failed_result(ConnectionError("no vCenter session available"))
        try:
            await context.connection.ping()
        except Exception as e:
            return make_connection_failed_result(e)
        return make_cluster_check_result_pass()


class VCenterVersionProbe(Probe):
    """vCenter 版本兼容性检查"""

    name = "vcenter_version"

    async def evaluate(self, context: CheckContext) -> ClusterCheckResult:
        if context.connection is None:
            return make_connection_failed_result(ConnectionError("no vCenter session available"))

        raw = await context.connection.get_version()
        settings = context.settings
        try:
            version = _parse_version(raw)
        except InvalidVersion as e:
            return make_generic_vcenter_api_error(e)

        minimum = Version(settings.min_vcenter_version)
        if version < minimum:
            reason = f"found older vcenter version {raw}, expected is {settings.min_vcenter_version}"
            return make_deprecated_environment_error(CheckStatus.DEPRECATED_VCENTER, reason)

        if version < Version(settings.min_migration_version):
            error = ValueError(
                f"found vcenter version {raw}, "
                f"minimum version for CSI migration is {settings.min_migration_version}"
            )
            return make_buggy_environment_error(CheckStatus.BUGGY_MIGRATION_PLATFORM, error)

        return make_cluster_check_result_pass()


class HostVersionProbe(Probe):
    """ESXi 主机版本兼容性检查

    逐台主机检查,返回最严重的结果
    """

    name = "esxi_version"

    async def evaluate(self, context: CheckContext) -> ClusterCheckResult:
        if context.connection is None:
            return make_connection_failed_result(ConnectionError("no vCenter session available"))

        settings = context.settings
        minimum = Version(settings.min_esxi_version)
        migration_minimum = Version(settings.min_migration_version)

        results = []
        hosts = await context.connection.list_host_versions()
        for host, raw in sorted(hosts.items()):
            try:
                version = _parse_version(raw)
            except InvalidVersion as e:
                results.append(make_generic_vcenter_api_error(e))
                continue

            if version < minimum:
                reason = (
                    f"host {host} is on ESXi version {raw}, "
                    f"minimum required version is {settings.min_esxi_version}"
                )
                results.append(
                    make_deprecated_environment_error(CheckStatus.DEPRECATED_ESXI_VERSION, reason)
                )
            elif version < migration_minimum:
                error = ValueError(
                    f"host {host} is on ESXi version {raw}, "
                    f"minimum version for CSI migration is {settings.min_migration_version}"
                )
                results.append(
                    make_buggy_environment_error(CheckStatus.BUGGY_MIGRATION_PLATFORM, error)
                )

        return aggregate_results(results)


class NodeHardwareVersionProbe(Probe):
    """节点虚拟机硬件版本检查"""

    name = "node_hardware_version"

    async def evaluate(self, context: CheckContext) -> ClusterCheckResult:
        if context.connection is None:
            return make_connection_failed_result(ConnectionError("no vCenter session available"))

        minimum = context.settings.min_hw_version
        outdated = []
        for node in context.api.list_nodes():
            node_name = node.get("metadata", {}).get("name", "")
            raw = await context.connection.get_vm_hardware_version(node)
            match = _HW_VERSION_PATTERN.match(raw or "")
            if not match:
                return make_generic_vcenter_api_error(
                    ValueError(f"unrecognized hardware version {raw!r} for node {node_name}")
                )
            if int(match.group(1)) < minimum:
                outdated.append(f"{node_name}({raw})")

        if outdated:
            reason = (
                f"node VMs {', '.join(outdated)} have hardware version lower than "
                f"the minimum required version vmx-{minimum}"
            )
            return make_deprecated_environment_error(CheckStatus.DEPRECATED_HW_VERSION, reason)

        return make_cluster_check_result_pass()


class ExistingDriverProbe(Probe):
    """检查集群中是否已存在非本 operator 安装的 vSphere CSI 驱动"""

    name = "existing_driver"
    network_facing = False

    async def evaluate(self, context: CheckContext) -> ClusterCheckResult:
        api = context.api
        csi_driver = api.get_csi_driver(DRIVER_NAME)
        if csi_driver is not None:
            if api.driver_installed_by_operator(DRIVER_NAME):
                return make_cluster_check_result_pass()
            return make_existing_driver_result(
                f"found existing unsupported {DRIVER_NAME} driver"
            )

        for csi_node in api.list_csi_nodes():
            drivers = csi_node.get("spec", {}).get("drivers") or []
            if any(d.get("name") == DRIVER_NAME for d in drivers):
                node_name = csi_node.get("metadata", {}).get("name", "")
                return make_existing_driver_result(
                    f"found existing unsupported {DRIVER_NAME} driver registered on node {node_name}"
                )

        return make_cluster_check_result_pass()


def default_probes() -> List[Probe]:
    """默认探针,顺序即聚合优先级"""
    return [
        ConnectivityProbe(),
        VCenterVersionProbe(),
        HostVersionProbe(),
        NodeHardwareVersionProbe(),
        ExistingDriverProbe(),
    ]
