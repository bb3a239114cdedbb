"""
vSphere CSI 驱动 Operator - 环境检查与升级门控
"""

__version__ = "1.0.0"
