"""
vCenter 模块 - 会话抽象与连接管理
"""

from .connection import VCenterConnection, InventoryConnection
from .manager import ConnectionManager, ConnectionFactory

__all__ = [
    "VCenterConnection",
    "InventoryConnection",
    "ConnectionManager",
    "ConnectionFactory",
]
