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


"""Full integration run: provision, install the driver, test, tear down."""

from __future__ import annotations

from pathlib import Path

import typer

from k8s_integration import console
from k8s_integration.config import DeploymentStrategy, display_config, resolve_config, validate_flags
from k8s_integration.orchestrator import check_prerequisites, run_pipeline


def run(
    # Cluster
    bringup_cluster: bool | None = typer.Option(
        None, "--bringup-cluster/--no-bringup-cluster", help="Build kubernetes and bring up a cluster"),
    teardown_cluster: bool | None = typer.Option(
        None, "--teardown-cluster/--no-teardown-cluster", help="Tear down the cluster after the e2e test"),
    teardown_driver: bool | None = typer.Option(
        None, "--teardown-driver/--no-teardown-driver", help="Tear down the driver after the e2e test"),
    deployment_strategy: DeploymentStrategy | None = typer.Option(
        None, "--deployment-strategy", help="Deploy the cluster on gce or gke"),
    gce_zone: str | None = typer.Option(
        None, "--gce-zone", help="Zone the cluster is created in or found in"),
    kube_version: str | None = typer.Option(
        None, "--kube-version", help="Kubernetes version to download and use for the cluster"),
    test_version: str | None = typer.Option(
        None, "--test-version", help="Kubernetes version to download and use for tests"),
    kube_feature_gates: str | None = typer.Option(
        None, "--kube-feature-gates", help="Feature gates to set on a new cluster"),
    local_k8s_dir: Path | None = typer.Option(
        None, "--local-k8s-dir", help="Local kubernetes/kubernetes directory to run e2e tests from"),
    gke_cluster_version: str | None = typer.Option(
        None, "--gke-cluster-version", help="Version of Kubernetes master and node for gke"),
    # Driver
    staging_image: str | None = typer.Option(
        None, "--staging-image", help="Name of image to stage to"),
    service_account_file: Path | None = typer.Option(
        None, "--service-account-file", help="Path of service account file"),
    deploy_overlay_name: str | None = typer.Option(
        None, "--deploy-overlay-name", help="Kustomize overlay to deploy the driver with"),
    do_driver_build: bool | None = typer.Option(
        None, "--do-driver-build/--no-do-driver-build", help="Build the driver from source"),
    pkg_dir: Path | None = typer.Option(
        None, "--pkg-dir", help="Driver source tree (default: from GOPATH)"),
    # Tests
    storageclass_file: str | None = typer.Option(
        None, "--storageclass-file", help="Storage class file relative to test/k8s-integration/config"),
    migration_test: bool | None = typer.Option(
        None, "--migration-test/--no-migration-test", help="Run the in-tree migration suite"),
    test_focus: str | None = typer.Option(
        None, "--test-focus", help="Test focus for Kubernetes e2e"),
) -> None:
    """Provision a test cluster, install the driver, run e2e tests, and clean up.

    Options not given on the command line fall back to E2E_* environment
    variables, then to defaults.
    """
    cfg = resolve_config(
        bringup_cluster=bringup_cluster,
        teardown_cluster=teardown_cluster,
        teardown_driver=teardown_driver,
        deployment_strategy=deployment_strategy,
        gce_zone=gce_zone,
        kube_version=kube_version,
        test_version=test_version,
        kube_feature_gates=kube_feature_gates,
        local_k8s_dir=local_k8s_dir,
        gke_cluster_version=gke_cluster_version,
        staging_image=staging_image,
        service_account_file=service_account_file,
        deploy_overlay_name=deploy_overlay_name,
        do_driver_build=do_driver_build,
        pkg_dir=pkg_dir,
        storageclass_file=storageclass_file,
        migration_test=migration_test,
        test_focus=test_focus,
    )
    validate_flags(cfg)
    display_config(cfg)
    check_prerequisites(cfg)

    result = run_pipeline(cfg)
    if not result.ok:
        raise RuntimeError(f"Failed to run integration test: {result.message}")
    console.print(f"[green]\u2705 {result.message}[/green]")
