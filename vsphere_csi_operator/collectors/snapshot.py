"""
集群只读快照

环境检查只读取以下资源 (kubectl -o json 格式的字典):
- Node
- CSIDriver / CSINode
- PersistentVolume
- Storage (operator.openshift.io)
- Infrastructure (config.openshift.io)
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml

from ..config import DRIVER_NAME, OPENSHIFT_CSI_DRIVER_ANNOTATION_KEY


class KubeAPIInterface(ABC):
    """探针使用的只读集群访问接口"""

    @abstractmethod
    def list_nodes(self) -> List[Dict]:
        ...

    @abstractmethod
    def get_csi_driver(self, name: str) -> Optional[Dict]:
        ...

    @abstractmethod
    def list_csi_nodes(self) -> List[Dict]:
        ...

    @abstractmethod
    def list_persistent_volumes(self) -> List[Dict]:
        ...

    @abstractmethod
    def get_storage(self) -> Optional[Dict]:
        """获取名为 cluster 的 Storage CR"""

    @abstractmethod
    def get_infrastructure(self) -> Optional[Dict]:
        """获取名为 cluster 的 Infrastructure"""

    def driver_installed_by_operator(self, driver_name: str = DRIVER_NAME) -> bool:
        """安装标记: CSIDriver 存在且带有 OCP 管理注解

        说明此前由本 operator 安装过驱动。
        """
        csi_driver = self.get_csi_driver(driver_name)
        if not csi_driver:
            return False
        annotations = csi_driver.get("metadata", {}).get("annotations") or {}
        return OPENSHIFT_CSI_DRIVER_ANNOTATION_KEY in annotations


# kind -> 快照中的存储字段
_KIND_FIELDS = {
    "Node": "nodes",
    "CSIDriver": "csi_drivers",
    "CSINode": "csi_nodes",
    "PersistentVolume": "persistent_volumes",
    "Storage": "storages",
    "Infrastructure": "infrastructures",
}


class ClusterSnapshot(KubeAPIInterface):
    """内存中的集群快照

    Example:
        snapshot = ClusterSnapshot.from_items(items)
        nodes = snapshot.list_nodes()
    """

    def __init__(
        self,
        nodes: Optional[List[Dict]] = None,
        csi_drivers: Optional[List[Dict]] = None,
        csi_nodes: Optional[List[Dict]] = None,
        persistent_volumes: Optional[List[Dict]] = None,
        storages: Optional[List[Dict]] = None,
        infrastructures: Optional[List[Dict]] = None,
    ):
        self.nodes = list(nodes or [])
        self.csi_drivers = list(csi_drivers or [])
        self.csi_nodes = list(csi_nodes or [])
        self.persistent_volumes = list(persistent_volumes or [])
        self.storages = list(storages or [])
        self.infrastructures = list(infrastructures or [])

    @classmethod
    def from_items(cls, items: Iterable[Dict]) -> "ClusterSnapshot":
        """按 kind 分拣对象,未知 kind 忽略"""
        fields: Dict[str, List[Dict]] = {name: [] for name in _KIND_FIELDS.values()}
        for item in items:
            field = _KIND_FIELDS.get(item.get("kind", ""))
            if field:
                fields[field].append(item)
        return cls(**fields)

    @classmethod
    def from_yaml_file(cls, path: Union[str, Path]) -> "ClusterSnapshot":
        """从 YAML 文件加载快照

        支持多文档 YAML,也支持 kind: List 的 items 列表。
        """
        text = Path(path).read_text(encoding="utf-8")
        items = []
        for doc in yaml.safe_load_all(text):
            if not doc:
                continue
            if doc.get("kind") == "List" or "items" in doc:
                items.extend(doc.get("items") or [])
            else:
                items.append(doc)
        return cls.from_items(items)

    def list_nodes(self) -> List[Dict]:
        return list(self.nodes)

    def get_csi_driver(self, name: str) -> Optional[Dict]:
        return _find_by_name(self.csi_drivers, name)

    def list_csi_nodes(self) -> List[Dict]:
        return list(self.csi_nodes)

    def list_persistent_volumes(self) -> List[Dict]:
        return list(self.persistent_volumes)

    def get_storage(self) -> Optional[Dict]:
        return _find_by_name(self.storages, "cluster")

    def get_infrastructure(self) -> Optional[Dict]:
        return _find_by_name(self.infrastructures, "cluster")

    def __repr__(self) -> str:
        return (
            f"ClusterSnapshot(nodes={len(self.nodes)}, "
            f"csi_drivers={len(self.csi_drivers)}, "
            f"pvs={len(self.persistent_volumes)})"
        )


def _find_by_name(items: List[Dict], name: str) -> Optional[Dict]:
    for item in items:
        if item.get("metadata", {}).get("name") == name:
            return item
    return None
