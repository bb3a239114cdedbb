"""
vCenter 连接抽象

具体的 vCenter 通信协议 (SOAP / REST) 由实现类负责;
环境检查只依赖这里定义的最小能力集合。
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from ..utils.errors import OperatorError, OperatorErrorCode


class VCenterConnection(ABC):
    """一个已登录的 vCenter 会话

    Attributes:
        server: vCenter 地址
    """

    server: str = ""

    @abstractmethod
    async def ping(self) -> None:
        """一次轻量的 API 往返,失败时抛出异常"""

    @abstractmethod
    async def get_version(self) -> str:
        """vCenter 版本号,例如 "7.0.2" """

    @abstractmethod
    async def list_host_versions(self) -> Dict[str, str]:
        """ESXi 主机名 -> 版本号"""

    @abstractmethod
    async def get_vm_hardware_version(self, node: Dict) -> str:
        """节点对应虚拟机的硬件版本,例如 "vmx-15" """

    async def is_active(self) -> bool:
        """会话是否仍然可用"""
        try:
            await self.ping()
        except Exception:
            return False
        return True

    async def logout(self) -> None:
        return None


class InventoryConnection(VCenterConnection):
    """基于静态清单的 vCenter 连接

    用于离线检查 (CLI --inventory) 和测试。清单格式:

        server: vcenter.example.lan
        version: 7.0.2
        hosts:
          esxi-1: 7.0.2
        vms:
          node-1: vmx-15

    Example:
        conn = InventoryConnection.from_yaml_file("vcenter.yaml")
        version = await conn.get_version()
    """

    def __init__(
        self,
        server: str = "vcenter.example.lan",
        version: str = "7.0.2",
        hosts: Optional[Dict[str, str]] = None,
        vms: Optional[Dict[str, str]] = None,
    ):
        self.server = server
        self.version = version
        self.hosts = dict(hosts or {})
        self.vms = dict(vms or {})
        self.logged_out = False

    @classmethod
    def from_dict(cls, inventory: Dict) -> "InventoryConnection":
        return cls(
            server=inventory.get("server", "vcenter.example.lan"),
            version=str(inventory.get("version", "7.0.2")),
            hosts={k: str(v) for k, v in (inventory.get("hosts") or {}).items()},
            vms={k: str(v) for k, v in (inventory.get("vms") or {}).items()},
        )

    @classmethod
    def from_yaml_file(cls, path: Union[str, Path]) -> "InventoryConnection":
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        return cls.from_dict(data)

    async def ping(self) -> None:
        if self.logged_out:
            raise OperatorError(
                "session has been logged out",
                OperatorErrorCode.AUTHENTICATION_FAILED,
                {"server": self.server},
            )

    async def get_version(self) -> str:
        return self.version

    async def list_host_versions(self) -> Dict[str, str]:
        return dict(self.hosts)

    async def get_vm_hardware_version(self, node: Dict) -> str:
        name = node.get("metadata", {}).get("name", "")
        if name not in self.vms:
            raise OperatorError(
                f"no virtual machine found for node {name}",
                OperatorErrorCode.RESOURCE_NOT_FOUND,
                {"node": name},
            )
        return self.vms[name]

    async def logout(self) -> None:
        self.logged_out = True
