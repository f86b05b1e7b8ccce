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


"""Run configuration, flag validation, and config display."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import typer
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from k8s_integration import console, logger
from k8s_integration.constants import (
    DEFAULT_CLUSTER_CREATE_MAX_RETRIES,
    GKE_TEST_CLUSTER_NAME,
    default_pkg_dir,
)


class DeploymentStrategy(str, Enum):
    """How the test cluster is brought up and down."""

    GCE = "gce"
    GKE = "gke"


class TestMode(str, Enum):
    """Which e2e suite runs against the installed driver."""

    __test__ = False

    DIRECT = "direct"
    MIGRATION = "migration"


# ============================================================================
# Run configuration
# ============================================================================

class RunConfiguration(BaseSettings):
    """Resolved options for one pipeline run, auto-loaded from E2E_* env vars.

    Attributes:
        bringup_cluster: Whether to bring up a new cluster.
        teardown_cluster: Whether to tear the cluster (and staged image) down afterwards.
        teardown_driver: Whether to delete the driver afterwards.
        deployment_strategy: ``gce`` or ``gke``; required when bringing a cluster up or down.
        gce_zone: Zone the cluster is created in or found in.
        kube_version: Kubernetes version to download and build for the cluster.
        test_version: Kubernetes version to download and build for the tests.
        kube_feature_gates: Feature gates to set on a new GCE cluster.
        local_k8s_dir: Prebuilt kubernetes/kubernetes checkout to use instead of downloading.
        gke_cluster_version: Master and node version for GKE clusters.
        gke_cluster_name: Name of the GKE test cluster.
        cluster_create_max_retries: GKE cluster creation attempts.
        storageclass_file: Storage class file relative to the test config dir.
        staging_image: Image repository the driver is staged to.
        service_account_file: Service account key handed to the driver.
        deploy_overlay_name: Kustomize overlay the driver is deployed with.
        do_driver_build: Whether to build and push the driver image from source.
        migration_test: Whether to run the in-tree migration suite.
        test_focus: Ginkgo focus expression.
        pkg_dir: Root of the driver source tree.
    """

    model_config = SettingsConfigDict(env_prefix="E2E_", extra="ignore", frozen=True)

    bringup_cluster: bool = True
    teardown_cluster: bool = True
    teardown_driver: bool = True
    deployment_strategy: DeploymentStrategy | None = None
    gce_zone: str = ""
    kube_version: str = ""
    test_version: str = ""
    kube_feature_gates: str = ""
    local_k8s_dir: Path | None = None
    gke_cluster_version: str = ""
    gke_cluster_name: str = GKE_TEST_CLUSTER_NAME
    cluster_create_max_retries: int = Field(default=DEFAULT_CLUSTER_CREATE_MAX_RETRIES, ge=1, le=10)
    storageclass_file: str = ""
    staging_image: str = ""
    service_account_file: Path | None = None
    deploy_overlay_name: str = ""
    do_driver_build: bool = True
    migration_test: bool = False
    test_focus: str = ""
    pkg_dir: Path = Field(default_factory=default_pkg_dir)

    @property
    def build_cluster_source(self) -> bool:
        """Kubernetes must be downloaded and built for the cluster."""
        return bool(self.kube_version)

    @property
    def build_test_source(self) -> bool:
        """A separate Kubernetes tree must be downloaded and built for the tests."""
        return bool(self.test_version) and self.test_version != self.kube_version

    @property
    def test_mode(self) -> TestMode:
        return TestMode.MIGRATION if self.migration_test else TestMode.DIRECT


# ============================================================================
# Config resolution
# ============================================================================

def resolve_config(**cli_values) -> RunConfiguration:
    """Merge CLI overrides, environment variables, and defaults.

    Resolution priority: CLI arguments > E2E_* environment variables > defaults.
    Options left unset on the command line arrive as None and are dropped.

    Returns:
        The immutable configuration for this run.
    """
    overrides = {key: value for key, value in cli_values.items() if value is not None}
    return RunConfiguration(**overrides)


def _require(value, message: str) -> None:
    if not value:
        raise typer.BadParameter(message)


def _forbid(value, message: str) -> None:
    if value:
        raise typer.BadParameter(message)


def validate_flags(cfg: RunConfiguration) -> None:
    """Validate required flags and flag combinations before anything runs.

    Args:
        cfg: Configuration resolved from the CLI and environment.

    Raises:
        typer.BadParameter: If a required flag is missing or flags contradict each other.
    """
    if cfg.do_driver_build:
        _require(cfg.staging_image, "staging-image is required when building the driver")
    _require(cfg.service_account_file, "service-account-file is a required flag")
    _require(cfg.deploy_overlay_name, "deploy-overlay-name is a required flag")
    _require(cfg.test_focus, "test-focus is a required flag")
    _require(cfg.gce_zone, "gce-zone is a required flag")

    if cfg.migration_test:
        _forbid(cfg.storageclass_file, "storageclass-file and migration-test cannot both be set")
    else:
        _require(cfg.storageclass_file, "One of storageclass-file and migration-test must be set")

    if not cfg.bringup_cluster:
        _forbid(cfg.kube_feature_gates, "kube-feature-gates set but not bringing up new cluster")

    if cfg.bringup_cluster or cfg.teardown_cluster:
        _require(cfg.deployment_strategy,
                 "Must set the deployment strategy if bringing up or down cluster.")
    else:
        _forbid(cfg.deployment_strategy,
                "Cannot set the deployment strategy if not bringing up or down cluster.")

    if cfg.deployment_strategy is DeploymentStrategy.GKE:
        _forbid(cfg.migration_test, "Cannot set deployment strategy to 'gke' for migration tests.")
        _forbid(cfg.kube_version,
                "Cannot set kube-version when using deployment strategy 'gke'. Use gke-cluster-version.")
        _require(cfg.gke_cluster_version,
                 "Must set gke-cluster-version when using deployment strategy 'gke'.")
        _forbid(cfg.kube_feature_gates, "Cannot set feature gates when using deployment strategy 'gke'.")
        if not cfg.local_k8s_dir:
            _require(cfg.test_version,
                     "Must set either test-version or local k8s dir when using deployment strategy 'gke'.")

    if cfg.local_k8s_dir:
        _forbid(cfg.kube_version, "Cannot set a kube version when using a local k8s dir.")
        _forbid(cfg.test_version, "Cannot set a test version when using a local k8s dir.")

    if cfg.bringup_cluster and cfg.deployment_strategy is DeploymentStrategy.GCE:
        _require(cfg.kube_version or cfg.local_k8s_dir,
                 "Bringing up a 'gce' cluster needs either kube-version or local-k8s-dir.")

    if cfg.teardown_cluster and not cfg.bringup_cluster:
        logger.warning("teardown-cluster without bringup-cluster: only a cluster brought up by this run "
                       "is deleted; use `cluster down` to remove an existing one")

    if not cfg.teardown_cluster and cfg.do_driver_build:
        logger.warning("teardown-cluster is off; staged image %s will be left in the registry",
                       cfg.staging_image)


# ============================================================================
# Display
# ============================================================================

def display_config(cfg: RunConfiguration) -> None:
    """Print only config relevant to the requested steps.

    Args:
        cfg: Resolved run configuration.
    """
    console.print(Panel.fit("Configuration", style="bold blue"))

    console.print("[yellow]Cluster:[/yellow]")
    console.print(f"  bringup / teardown : {cfg.bringup_cluster} / {cfg.teardown_cluster}")
    if cfg.deployment_strategy is not None:
        console.print(f"  strategy           : {cfg.deployment_strategy.value}")
    console.print(f"  zone               : {cfg.gce_zone}")
    if cfg.deployment_strategy is DeploymentStrategy.GKE:
        console.print(f"  gke_cluster        : {cfg.gke_cluster_name} ({cfg.gke_cluster_version})")
    if cfg.kube_feature_gates:
        console.print(f"  feature_gates      : {cfg.kube_feature_gates}")

    console.print("[yellow]Kubernetes source:[/yellow]")
    console.print(f"  kube_version       : {cfg.kube_version or '(none)'}")
    console.print(f"  test_version       : {cfg.test_version or '(same as cluster)'}")
    if cfg.local_k8s_dir:
        console.print(f"  local_k8s_dir      : {cfg.local_k8s_dir}")

    console.print("[yellow]Driver:[/yellow]")
    console.print(f"  build / teardown   : {cfg.do_driver_build} / {cfg.teardown_driver}")
    if cfg.do_driver_build:
        console.print(f"  staging_image      : {cfg.staging_image}")
    console.print(f"  overlay            : {cfg.deploy_overlay_name}")
    console.print(f"  pkg_dir            : {cfg.pkg_dir}")

    console.print("[yellow]Tests:[/yellow]")
    console.print(f"  mode               : {cfg.test_mode.value}")
    console.print(f"  focus              : {cfg.test_focus}")
    if cfg.storageclass_file:
        console.print(f"  storageclass_file  : {cfg.storageclass_file}")
