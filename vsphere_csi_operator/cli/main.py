#!/usr/bin/env python3
"""
vSphere CSI 环境检查工具

执行一次控制器 tick (只读演练):
- 输入: 集群快照 (YAML 文件或 kubectl 实时读取) + vCenter 清单
- 处理: 环境检查 -> 集群状态 -> Conditions -> 子控制器门控
- 输出: 聚合结果、Conditions、是否会安装驱动
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from vsphere_csi_operator.checks.models import CheckStatus, ClusterCheckStatus
from vsphere_csi_operator.collectors import ClusterSnapshot, KubectlWrapper
from vsphere_csi_operator.config import load_settings
from vsphere_csi_operator.controller import (
    InMemoryOperatorClient,
    OperandController,
    StorageClassController,
    VSphereController,
)
from vsphere_csi_operator.utils.errors import (
    ClusterDegradedError,
    OperatorError,
    VCenterConnectionError,
)
from vsphere_csi_operator.vcenter import ConnectionManager, InventoryConnection


console = Console()

STATUS_STYLES = {
    ClusterCheckStatus.ALL_GOOD: "green",
    ClusterCheckStatus.DRIVER_INSTALL_BLOCKED: "yellow",
    ClusterCheckStatus.UPGRADES_BLOCKED_VIA_ADMIN_ACK: "yellow",
    ClusterCheckStatus.UPGRADES_BLOCKED: "red",
    ClusterCheckStatus.UPGRADE_STATE_UNKNOWN: "yellow",
    ClusterCheckStatus.DEGRADED: "bold red",
}


class DryRunStorageClassController(StorageClassController):
    """只记录调用,不创建 StorageClass"""

    def __init__(self):
        self.sync_called = 0

    async def sync(self, connection, api) -> None:
        self.sync_called += 1


class DryRunOperandController(OperandController):
    """只记录调用,不部署驱动"""

    def __init__(self):
        self.started = False

    def start(self) -> None:
        self.started = True


def make_inventory_factory(inventory_path: Optional[str]):
    """根据 vCenter 清单构造连接工厂"""

    async def factory():
        if not inventory_path:
            raise VCenterConnectionError("no vCenter inventory configured")
        return InventoryConnection.from_yaml_file(inventory_path)

    return factory


def make_admin_ack(acks: List[str]):
    acknowledged = set(acks or [])

    def lookup(status: CheckStatus) -> bool:
        return status.value in acknowledged

    return lookup


async def run_check(args) -> int:
    """执行一次检查

    Returns:
        退出码: 0 正常 / 阻塞,1 降级或失败
    """
    settings = load_settings(args.env_file)

    if args.live:
        console.print("[dim]从集群读取资源...[/dim]")
        snapshot = await KubectlWrapper(context=args.context).collect_snapshot()
    elif args.snapshot:
        snapshot = ClusterSnapshot.from_yaml_file(args.snapshot)
    else:
        console.print("[red]❌ 需要 --snapshot 或 --live[/red]")
        return 1

    operator_client = InMemoryOperatorClient()
    sc_controller = DryRunStorageClassController()
    operand_controller = DryRunOperandController()

    controller = VSphereController(
        name=settings.controller_name,
        operator_client=operator_client,
        api=snapshot,
        connection_manager=ConnectionManager(
            make_inventory_factory(args.inventory),
            timeout=settings.connection_timeout_seconds,
        ),
        storage_class_controller=sc_controller,
        operand_controllers=[operand_controller],
        settings=settings,
        admin_ack=make_admin_ack(args.ack),
    )

    exit_code = 0
    try:
        await controller.sync(force_check=True)
    except ClusterDegradedError as e:
        console.print(f"[bold red]❌ 集群降级: {e.message}[/bold red]")
        exit_code = 1
    finally:
        await controller.close()

    print_summary(controller, operator_client, sc_controller, operand_controller)
    return exit_code


def print_summary(controller, operator_client, sc_controller, operand_controller):
    """打印检查结果"""
    console.print()
    status = controller.last_cluster_status
    result = controller.last_result
    if status is not None:
        style = STATUS_STYLES.get(status, "white")
        console.print(Panel(f"[{style}]{status.value}[/{style}]", title="集群状态", expand=False))
    if result is not None and not result.passed:
        console.print(f"[bold]原因:[/bold] {result.check_status.value}")
        console.print(f"[bold]说明:[/bold] {result.message}")

    _, operator_status, _ = operator_client.get_operator_state()
    if operator_status.conditions:
        table = Table(title="Conditions")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Reason")
        table.add_column("Message", overflow="fold")
        for condition in operator_status.conditions:
            table.add_row(condition.type, condition.status.value, condition.reason, condition.message)
        console.print(table)

    console.print(f"驱动部署控制器启动: {'是' if operand_controller.started else '否'}")
    console.print(f"StorageClass 同步: {'是' if sc_controller.sync_called else '否'}")
    console.print()


def main():
    """CLI 主入口"""
    parser = argparse.ArgumentParser(
        prog="vsphere-csi-checker",
        description="vSphere CSI 驱动环境检查",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  %(prog)s --snapshot cluster.yaml --inventory vcenter.yaml
  %(prog)s --live --context admin --inventory vcenter.yaml
  %(prog)s --snapshot cluster.yaml --inventory vcenter.yaml --ack CheckDeprecatedHWVersion
        """
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--snapshot", help="集群资源 YAML 文件")
    source.add_argument("--live", action="store_true", help="通过 kubectl 读取集群")
    parser.add_argument("--context", help="kubeconfig context (配合 --live)")
    parser.add_argument("--inventory", help="vCenter 清单 YAML 文件")
    parser.add_argument("--ack", action="append", default=[], help="管理员已确认的检查状态 (可重复)")
    parser.add_argument("--env-file", help=".env 文件路径")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    try:
        exit_code = asyncio.run(run_check(args))
    except OperatorError as e:
        console.print(f"[red]❌ {e}[/red]")
        exit_code = 1
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  用户中断[/yellow]")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
