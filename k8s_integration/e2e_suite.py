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


"""Kubernetes storage e2e suite: test driver config generation and ginkgo invocation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from rich.panel import Panel

from k8s_integration import console
from k8s_integration.constants import (
    ENV_ARTIFACTS,
    K8S_BUILD_BIN_DIR,
    MIGRATED_PLUGINS,
    REL_TEST_CONFIG_DIR,
    TEST_CONFIG_FILE,
    TEST_DRIVER_CAPABILITIES,
    TEST_DRIVER_FS_TYPES,
    TEST_DRIVER_MIN_SIZE,
    TEST_DRIVER_NAME,
    TEST_NODE_OS_DISTRO,
    TEST_PROVIDER,
    TEST_SKIP_REGEX,
)
from k8s_integration.utils import command_env, run_command


@dataclass(frozen=True)
class TestRunParams:
    """Where and how the e2e suite runs.

    Attributes:
        pkg_dir: Root of the driver source tree (holds the test configs).
        test_dir: Built kubernetes tree providing ginkgo and e2e.test.
        focus: Ginkgo focus expression.
        zone: GCE zone the cluster lives in.
        report_dir: Directory for junit reports, or None to use $ARTIFACTS.
    """

    __test__ = False

    pkg_dir: Path
    test_dir: Path
    focus: str
    zone: str
    report_dir: Path | None = None


def generate_driver_config_file(pkg_dir: Path, storageclass_file: str) -> Path:
    """Write the external test driver definition consumed by ``-storage.testdriver``.

    Args:
        pkg_dir: Root of the driver source tree.
        storageclass_file: Storage class manifest relative to the test config dir.

    Returns:
        Path of the generated config file.
    """
    config_dir = pkg_dir.resolve() / REL_TEST_CONFIG_DIR
    config = {
        "StorageClass": {"FromFile": str(config_dir / storageclass_file)},
        "DriverInfo": {
            "Name": TEST_DRIVER_NAME,
            "SupportedFsType": {fs_type: None for fs_type in TEST_DRIVER_FS_TYPES},
            "Capabilities": {capability: True for capability in TEST_DRIVER_CAPABILITIES},
            "SupportedSizeRange": {"Min": TEST_DRIVER_MIN_SIZE},
        },
    }
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / TEST_CONFIG_FILE
    with open(config_path, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    return config_path


def ginkgo_args(params: TestRunParams, test_config_arg: str) -> list[str]:
    """Build the ginkgo command line (everything after the ginkgo binary).

    Paths are absolute since ginkgo runs from inside the test tree.
    """
    report_dir = params.report_dir.resolve() if params.report_dir else os.environ.get(ENV_ARTIFACTS, "")
    return [
        "-p",
        f"-focus={params.focus}",
        f"-skip={TEST_SKIP_REGEX}",
        str(params.test_dir.resolve() / K8S_BUILD_BIN_DIR / "e2e.test"),
        "--",
        f"-report-dir={report_dir}",
        f"-provider={TEST_PROVIDER}",
        f"-node-os-distro={TEST_NODE_OS_DISTRO}",
        f"-gce-zone={params.zone}",
        test_config_arg,
    ]


def run_tests_with_config(params: TestRunParams, test_config_arg: str) -> None:
    """Run the e2e suite from the test kubernetes tree.

    Raises:
        sh.ErrorReturnCode: If any test fails.
    """
    test_dir = params.test_dir.resolve()
    env = command_env({"KUBECONFIG": Path.home() / ".kube" / "config"})
    run_command(
        "Running tests",
        test_dir / K8S_BUILD_BIN_DIR / "ginkgo",
        *ginkgo_args(params, test_config_arg),
        _cwd=str(test_dir),
        _env=env,
    )


def run_direct_tests(params: TestRunParams, storageclass_file: str) -> None:
    """Run the storage suite against the driver as an external test driver."""
    console.print(Panel.fit(f"Running CSI tests (focus: {params.focus})", style="bold blue"))
    config_path = generate_driver_config_file(params.pkg_dir, storageclass_file)
    run_tests_with_config(params, f"-storage.testdriver={config_path}")
    console.print("[green]\u2705 CSI tests passed[/green]")


def run_migration_tests(params: TestRunParams) -> None:
    """Run the in-tree GCE PD suite with the plugin migrated to the driver."""
    console.print(Panel.fit(f"Running migration tests (focus: {params.focus})", style="bold blue"))
    run_tests_with_config(params, f"-storage.migratedPlugins={MIGRATED_PLUGINS}")
    console.print("[green]\u2705 Migration tests passed[/green]")
