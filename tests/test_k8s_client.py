#!/usr/bin/env python3
"""
测试 kubectl 封装与集群快照
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import json
import subprocess
from types import SimpleNamespace

from testlib import get_csi_driver, get_intree_pv, get_node, get_storage_operator
from vsphere_csi_operator.collectors import ClusterSnapshot, KubectlWrapper, SNAPSHOT_RESOURCES
from vsphere_csi_operator.collectors import k8s_client
from vsphere_csi_operator.config import DRIVER_NAME


def _completed(stdout="", stderr="", returncode=0):
    return SimpleNamespace(stdout=stdout, stderr=stderr, returncode=returncode)


def test_context_in_command():
    wrapper = KubectlWrapper(context="admin")
    assert wrapper.kubectl_cmd == ["kubectl", "--context", "admin"]
    assert KubectlWrapper().kubectl_cmd == ["kubectl"]


def test_run_parses_json(monkeypatch):
    monkeypatch.setattr(
        k8s_client.subprocess, "run",
        lambda cmd, **kwargs: _completed(stdout=json.dumps({"items": []})),
    )
    result = asyncio.run(KubectlWrapper().run(["kubectl", "get", "nodes", "-o", "json"]))
    assert result == {"success": True, "data": {"items": []}}


def test_run_failure(monkeypatch):
    monkeypatch.setattr(
        k8s_client.subprocess, "run",
        lambda cmd, **kwargs: _completed(stderr="error: the server doesn't have a resource type\n", returncode=1),
    )
    result = asyncio.run(KubectlWrapper().run(["kubectl", "get", "storages"]))
    assert not result["success"]
    assert "doesn't have a resource type" in result["error"]


def test_run_timeout(monkeypatch):
    def timeout(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr(k8s_client.subprocess, "run", timeout)
    result = asyncio.run(KubectlWrapper().run(["kubectl", "get", "nodes"], timeout=3))
    assert not result["success"]
    assert "timed out after 3s" in result["error"]


def test_run_missing_binary(monkeypatch):
    def missing(cmd, **kwargs):
        raise FileNotFoundError("kubectl")

    monkeypatch.setattr(k8s_client.subprocess, "run", missing)
    result = asyncio.run(KubectlWrapper().run(["kubectl", "version"]))
    assert not result["success"]


def test_collect_snapshot(monkeypatch):
    """某类资源获取失败时对应列表为空"""
    objects = {
        "nodes": [get_node("node-1"), get_node("node-2")],
        "csidrivers.storage.k8s.io": [get_csi_driver(with_ocp_annotation=True)],
        "persistentvolumes": [get_intree_pv("pv-1")],
    }
    seen = []

    def fake_run(cmd, **kwargs):
        resource = cmd[cmd.index("get") + 1]
        seen.append(resource)
        if resource == "storages.operator.openshift.io":
            return _completed(stderr="forbidden", returncode=1)
        return _completed(stdout=json.dumps({"items": objects.get(resource, [])}))

    monkeypatch.setattr(k8s_client.subprocess, "run", fake_run)
    snapshot = asyncio.run(KubectlWrapper().collect_snapshot())

    print(f"  快照: {snapshot!r}")
    assert seen == list(SNAPSHOT_RESOURCES.values())
    assert len(snapshot.list_nodes()) == 2
    assert snapshot.get_storage() is None
    assert snapshot.driver_installed_by_operator(DRIVER_NAME)
    assert len(snapshot.list_persistent_volumes()) == 1


def test_snapshot_from_yaml(tmp_path):
    path = tmp_path / "cluster.yaml"
    path.write_text(
        "apiVersion: v1\n"
        "kind: List\n"
        "items:\n"
        "- apiVersion: v1\n"
        "  kind: Node\n"
        "  metadata: {name: node-1}\n"
        "- apiVersion: storage.k8s.io/v1\n"
        "  kind: CSIDriver\n"
        f"  metadata: {{name: {DRIVER_NAME}}}\n"
        "---\n"
        "apiVersion: operator.openshift.io/v1\n"
        "kind: Storage\n"
        "metadata: {name: cluster}\n"
        "spec: {vsphereStorageDriver: CSIWithMigrationDriver}\n"
        "---\n",
        encoding="utf-8",
    )
    snapshot = ClusterSnapshot.from_yaml_file(path)
    assert [n["metadata"]["name"] for n in snapshot.list_nodes()] == ["node-1"]
    assert snapshot.get_csi_driver(DRIVER_NAME) is not None
    assert not snapshot.driver_installed_by_operator(DRIVER_NAME)
    assert snapshot.get_storage()["spec"]["vsphereStorageDriver"] == "CSIWithMigrationDriver"


def test_snapshot_ignores_unknown_kinds():
    snapshot = ClusterSnapshot.from_items([
        {"kind": "ConfigMap", "metadata": {"name": "x"}},
        get_storage_operator(),
    ])
    assert snapshot.get_storage() is not None
    assert snapshot.list_nodes() == []
    assert snapshot.get_infrastructure() is None


if __name__ == "__main__":
    import pytest
    sys.exit(pytest.main([__file__, "-v"]))
