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


"""Test cluster lifecycle on GCE (kube-up scripts) and GKE (gcloud)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import sh
from rich.panel import Panel
from tenacity import retry, stop_after_attempt, wait_fixed

from k8s_integration import console
from k8s_integration.config import DeploymentStrategy
from k8s_integration.constants import (
    CLUSTER_CREATE_RETRY_WAIT_SECONDS,
    DEFAULT_CLUSTER_CREATE_MAX_RETRIES,
    ENV_FEATURE_GATES,
    ENV_GCE_ZONE,
    GKE_TEST_CLUSTER_NAME,
    REL_E2E_DOWN,
    REL_E2E_UP,
)
from k8s_integration.utils import command_env, run_command


@dataclass(frozen=True)
class ClusterParams:
    """Everything cluster bring-up and teardown need.

    Attributes:
        zone: GCE zone of the cluster.
        k8s_dir: Kubernetes tree whose kube-up scripts manage a GCE cluster.
        feature_gates: Feature gates for a new GCE cluster, or empty.
        gke_cluster_name: Name of the GKE test cluster.
        gke_cluster_version: Master and node version for GKE.
        max_retries: GKE cluster creation attempts.
    """

    zone: str
    k8s_dir: Path | None = None
    feature_gates: str = ""
    gke_cluster_name: str = GKE_TEST_CLUSTER_NAME
    gke_cluster_version: str = ""
    max_retries: int = DEFAULT_CLUSTER_CREATE_MAX_RETRIES


def _require_k8s_dir(params: ClusterParams) -> Path:
    if params.k8s_dir is None:
        raise RuntimeError("a Kubernetes source tree is required for the 'gce' deployment strategy")
    return params.k8s_dir


# ============================================================================
# GCE
# ============================================================================

def cluster_up_gce(params: ClusterParams) -> None:
    """Start an e2e cluster on GCE with the tree's kube-up scripts.

    Args:
        params: Cluster parameters; ``k8s_dir`` must be set.
    """
    k8s_dir = _require_k8s_dir(params)
    env = command_env({ENV_GCE_ZONE: params.zone, ENV_FEATURE_GATES: params.feature_gates})
    run_command("Starting E2E cluster on GCE", k8s_dir / REL_E2E_UP, _env=env)
    console.print("[green]\u2705 GCE cluster is up[/green]")


def cluster_down_gce(params: ClusterParams) -> None:
    """Bring down the GCE e2e cluster started from the same tree."""
    k8s_dir = _require_k8s_dir(params)
    env = command_env({ENV_GCE_ZONE: params.zone})
    run_command("Bringing down E2E cluster on GCE", k8s_dir / REL_E2E_DOWN, _env=env)


# ============================================================================
# GKE
# ============================================================================

def gke_cluster_exists(params: ClusterParams) -> bool:
    """Check whether the GKE test cluster already exists in the zone."""
    output = sh.gcloud(
        "container", "clusters", "list",
        "--zone", params.zone,
        "--filter", f"name={params.gke_cluster_name}",
        "--format", "value(name)",
    )
    return params.gke_cluster_name in str(output).split()


def cluster_down_gke(params: ClusterParams) -> None:
    """Delete the GKE test cluster."""
    run_command(
        f"Deleting GKE cluster '{params.gke_cluster_name}'",
        "gcloud", "container", "clusters", "delete", params.gke_cluster_name,
        "--zone", params.zone, "--quiet",
    )


def cluster_up_gke(params: ClusterParams) -> None:
    """Create the GKE test cluster, replacing a leftover one, with retry logic.

    Raises:
        sh.ErrorReturnCode: If the cluster cannot be created after all retries.
    """

    @retry(
        stop=stop_after_attempt(params.max_retries),
        wait=wait_fixed(CLUSTER_CREATE_RETRY_WAIT_SECONDS),
        reraise=True,
    )
    def _attempt() -> None:
        if gke_cluster_exists(params):
            console.print(f"[yellow]   Detected existing cluster '{params.gke_cluster_name}', deleting[/yellow]")
            cluster_down_gke(params)
        run_command(
            f"Creating GKE cluster '{params.gke_cluster_name}'",
            "gcloud", "container", "clusters", "create", params.gke_cluster_name,
            "--zone", params.zone,
            "--cluster-version", params.gke_cluster_version,
            "--quiet",
        )

    _attempt()
    console.print("[green]\u2705 GKE cluster is up[/green]")


# ============================================================================
# Strategy dispatch
# ============================================================================

def _resolve_strategy(strategy: DeploymentStrategy | str) -> DeploymentStrategy:
    try:
        return DeploymentStrategy(strategy)
    except ValueError:
        raise ValueError(
            f"deployment-strategy must be set to 'gce' or 'gke', but is: {strategy}") from None


def cluster_up(strategy: DeploymentStrategy | str, params: ClusterParams) -> None:
    """Bring up a test cluster with the given deployment strategy.

    Raises:
        ValueError: If the strategy is not ``gce`` or ``gke``.
    """
    strategy = _resolve_strategy(strategy)
    console.print(Panel.fit(f"Bringing up cluster ({strategy.value})", style="bold blue"))
    if strategy is DeploymentStrategy.GCE:
        cluster_up_gce(params)
    else:
        cluster_up_gke(params)


def cluster_down(strategy: DeploymentStrategy | str, params: ClusterParams) -> None:
    """Tear down the test cluster with the given deployment strategy.

    Raises:
        ValueError: If the strategy is not ``gce`` or ``gke``.
    """
    if _resolve_strategy(strategy) is DeploymentStrategy.GCE:
        cluster_down_gce(params)
    else:
        cluster_down_gke(params)
