# /*
# Copyright 2026 The Kubernetes Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Shared fixtures: clean E2E_* environment, config factory, and fake external operations."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from k8s_integration.config import DeploymentStrategy, RunConfiguration
from k8s_integration.orchestrator import ExternalOperations


@pytest.fixture(autouse=True)
def _clean_e2e_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("E2E_"):
            monkeypatch.delenv(key)


@pytest.fixture
def make_config(tmp_path):
    """Factory for a valid GCE configuration; keyword arguments override fields."""

    def _make(**overrides) -> RunConfiguration:
        sa_file = tmp_path / "sa.json"
        sa_file.write_text("{}")
        values = dict(
            bringup_cluster=True,
            teardown_cluster=True,
            teardown_driver=True,
            deployment_strategy=DeploymentStrategy.GCE,
            gce_zone="us-central1-b",
            kube_version="v1.14.0",
            staging_image="gcr.io/test-project/gcp-persistent-disk-csi-driver",
            service_account_file=sa_file,
            deploy_overlay_name="dev",
            do_driver_build=True,
            storageclass_file="sc-standard.yaml",
            test_focus="External.Storage",
            pkg_dir=tmp_path / "driver",
        )
        values.update(overrides)
        return RunConfiguration(**values)

    return _make


class FakeOperations:
    """Records every external call in order; named operations can be made to fail."""

    def __init__(self, fail: dict[str, Exception] | None = None) -> None:
        self.fail = dict(fail or {})
        self.calls: list[str] = []
        self.args: dict[str, tuple] = {}
        self._lock = threading.Lock()

    def _call(self, name: str, *args):
        with self._lock:
            self.calls.append(name)
            self.args[name] = args
        if name in self.fail:
            raise self.fail[name]

    def build_source(self, parent_dir: Path, version: str) -> Path:
        self._call(f"build_source:{version}", parent_dir, version)
        return parent_dir / "kubernetes"

    def push_driver_image(self, pkg_dir, image, tag):
        self._call("push_driver_image", pkg_dir, image, tag)

    def delete_driver_image(self, image, tag):
        self._call("delete_driver_image", image, tag)

    def cluster_up(self, strategy, params):
        self._call("cluster_up", strategy, params)

    def cluster_down(self, strategy, params):
        self._call("cluster_down", strategy, params)

    def install_driver(self, params):
        self._call("install_driver", params)

    def delete_driver(self, params):
        self._call("delete_driver", params)

    def run_direct_tests(self, params, storageclass_file):
        self._call("run_direct_tests", params, storageclass_file)

    def run_migration_tests(self, params):
        self._call("run_migration_tests", params)

    def operations(self) -> ExternalOperations:
        return ExternalOperations(
            build_source=self.build_source,
            push_driver_image=self.push_driver_image,
            delete_driver_image=self.delete_driver_image,
            cluster_up=self.cluster_up,
            cluster_down=self.cluster_down,
            install_driver=self.install_driver,
            delete_driver=self.delete_driver,
            run_direct_tests=self.run_direct_tests,
            run_migration_tests=self.run_migration_tests,
        )


@pytest.fixture
def fake_ops():
    """Factory for FakeOperations; pass ``fail={"call_name": exc}`` to inject failures."""
    return FakeOperations
