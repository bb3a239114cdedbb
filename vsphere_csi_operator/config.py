"""
Operator 配置

配置来源 (优先级从高到低):
1. 显式传入的参数
2. 环境变量 VSPHERE_*
3. .env 文件 (python-dotenv)
4. 默认值
"""

import os
from datetime import timedelta
from typing import Dict, Optional

from dotenv import load_dotenv
from packaging.version import InvalidVersion, Version
from pydantic import BaseModel, Field, ValidationError, field_validator

from .utils.errors import ConfigurationError


# CSI 驱动名称与 OCP 管理注解
DRIVER_NAME = "csi.vsphere.vmware.com"
OPENSHIFT_CSI_DRIVER_ANNOTATION_KEY = "csi.openshift.io/managed"
INTREE_PLUGIN_NAME = "kubernetes.io/vsphere-volume"
MIGRATION_DRIVER_SETTING = "CSIWithMigrationDriver"

# 环境变量 -> 配置字段
ENV_FIELDS: Dict[str, str] = {
    "VSPHERE_CONTROLLER_NAME": "controller_name",
    "VSPHERE_CHECK_INTERVAL": "check_interval_seconds",
    "VSPHERE_CHECK_BACKOFF": "initial_backoff_seconds",
    "VSPHERE_PROBE_TIMEOUT": "probe_timeout_seconds",
    "VSPHERE_CONNECTION_TIMEOUT": "connection_timeout_seconds",
    "VSPHERE_MIN_VCENTER_VERSION": "min_vcenter_version",
    "VSPHERE_MIN_ESXI_VERSION": "min_esxi_version",
    "VSPHERE_MIN_MIGRATION_VERSION": "min_migration_version",
    "VSPHERE_MIN_HW_VERSION": "min_hw_version",
}


class Settings(BaseModel):
    """环境检查引擎配置"""

    controller_name: str = "VMwareVSphereController"
    check_interval_seconds: float = Field(default=600, gt=0)
    initial_backoff_seconds: float = Field(default=60, gt=0)
    probe_timeout_seconds: float = Field(default=30, gt=0)
    connection_timeout_seconds: float = Field(default=30, gt=0)

    min_vcenter_version: str = "6.7.3"
    min_esxi_version: str = "6.7.3"
    # 低于该版本的 vCenter/ESXi 上 CSI 迁移存在已知缺陷
    min_migration_version: str = "7.0.2"
    min_hw_version: int = Field(default=15, gt=0)

    @field_validator("min_vcenter_version", "min_esxi_version", "min_migration_version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        try:
            Version(value)
        except InvalidVersion as e:
            raise ValueError(f"无效的版本号: {value}") from e
        return value

    @property
    def check_interval(self) -> timedelta:
        return timedelta(seconds=self.check_interval_seconds)

    @property
    def initial_backoff(self) -> timedelta:
        return timedelta(seconds=self.initial_backoff_seconds)


def load_settings(env_file: Optional[str] = None, **overrides) -> Settings:
    """加载配置

    Args:
        env_file: .env 文件路径 (默认在当前目录向上查找)
        **overrides: 显式覆盖的字段

    Returns:
        Settings 实例

    Raises:
        ConfigurationError: 配置项校验失败
    """
    load_dotenv(env_file)

    values = {}
    for env_key, field_name in ENV_FIELDS.items():
        raw = os.getenv(env_key)
        if raw not in (None, ""):
            values[field_name] = raw
    values.update(overrides)

    try:
        return Settings(**values)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ()))
        raise ConfigurationError(
            f"配置校验失败: {first.get('msg')}",
            field=field,
            value=first.get("input"),
        ) from e
