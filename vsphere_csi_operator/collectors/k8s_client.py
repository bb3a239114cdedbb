"""
Kubernetes 客户端 - 基于 kubectl

只读取环境检查需要的资源,构造 ClusterSnapshot。
"""

import json
import logging
import subprocess
from typing import Dict, List, Optional

from .snapshot import ClusterSnapshot

logger = logging.getLogger(__name__)


# 快照字段 -> kubectl 资源名 (集群级资源)
SNAPSHOT_RESOURCES = {
    "nodes": "nodes",
    "csi_drivers": "csidrivers.storage.k8s.io",
    "csi_nodes": "csinodes.storage.k8s.io",
    "persistent_volumes": "persistentvolumes",
    "storages": "storages.operator.openshift.io",
    "infrastructures": "infrastructures.config.openshift.io",
}


class KubectlWrapper:
    """kubectl 封装"""

    def __init__(self, context: Optional[str] = None, kubectl: str = "kubectl"):
        """
        Args:
            context: kubeconfig context (默认使用 current-context)
            kubectl: kubectl 可执行文件
        """
        self.context = context
        self.kubectl_cmd = self._build_kubectl_cmd(kubectl)

    def _build_kubectl_cmd(self, kubectl: str) -> List[str]:
        """构建 kubectl 命令前缀"""
        cmd = [kubectl]
        if self.context:
            cmd.extend(["--context", self.context])
        return cmd

    async def run(self, cmd: List[str], timeout: int = 10) -> Dict:
        """
        执行命令并解析结果

        Args:
            cmd: 命令列表
            timeout: 超时时间（秒）

        Returns:
            {"success": bool, "data": any, "error": str}
        """
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout
            )

            if result.returncode != 0:
                return {
                    "success": False,
                    "error": result.stderr.strip(),
                    "cmd": " ".join(cmd)
                }

            try:
                data = json.loads(result.stdout)
            except json.JSONDecodeError:
                # 不是 JSON，返回原始文本
                return {"success": True, "data": result.stdout.strip()}
            return {"success": True, "data": data}

        except subprocess.TimeoutExpired:
            return {
                "success": False,
                "error": f"Command timed out after {timeout}s",
                "cmd": " ".join(cmd)
            }
        except OSError as e:
            return {
                "success": False,
                "error": str(e),
                "cmd": " ".join(cmd)
            }

    async def list_resource(self, resource: str, timeout: int = 15) -> Dict:
        """获取集群级资源列表"""
        cmd = self.kubectl_cmd + ["get", resource, "-o", "json"]
        return await self.run(cmd, timeout=timeout)

    async def collect_snapshot(self) -> ClusterSnapshot:
        """
        收集环境检查所需的全部资源

        资源类型不存在 (例如非 OpenShift 集群没有 Storage CRD) 时
        对应列表为空,不中断收集。

        Returns:
            ClusterSnapshot
        """
        fields = {}
        for field, resource in SNAPSHOT_RESOURCES.items():
            result = await self.list_resource(resource)
            if not result.get("success"):
                logger.warning("获取 %s 失败: %s", resource, result.get("error"))
                fields[field] = []
                continue

            data = result.get("data")
            items = data.get("items", []) if isinstance(data, dict) else []
            fields[field] = items
            logger.debug("获取 %s: %d 个对象", resource, len(items))

        return ClusterSnapshot(**fields)
