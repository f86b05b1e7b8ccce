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


"""Cluster subcommands (up, down)."""

from __future__ import annotations

from pathlib import Path

import typer

from k8s_integration.cluster import ClusterParams, cluster_down, cluster_up
from k8s_integration.config import DeploymentStrategy, RunConfiguration

app = typer.Typer(help="Bring a test cluster up or down.")


def _cluster_params(
    zone: str | None,
    k8s_dir: Path | None,
    gke_cluster_version: str | None,
    feature_gates: str = "",
) -> ClusterParams:
    cfg = RunConfiguration()
    return ClusterParams(
        zone=zone or cfg.gce_zone,
        k8s_dir=k8s_dir or cfg.local_k8s_dir,
        feature_gates=feature_gates,
        gke_cluster_name=cfg.gke_cluster_name,
        gke_cluster_version=gke_cluster_version or cfg.gke_cluster_version,
        max_retries=cfg.cluster_create_max_retries,
    )


@app.command()
def up(
    strategy: DeploymentStrategy = typer.Option(..., "--deployment-strategy", help="gce or gke"),
    zone: str | None = typer.Option(None, "--gce-zone", help="Cluster zone"),
    k8s_dir: Path | None = typer.Option(None, "--k8s-dir", help="Built kubernetes tree (gce)"),
    gke_cluster_version: str | None = typer.Option(None, "--gke-cluster-version", help="GKE version"),
    feature_gates: str = typer.Option("", "--kube-feature-gates", help="Feature gates (gce)"),
) -> None:
    """Bring up a test cluster."""
    cluster_up(strategy, _cluster_params(zone, k8s_dir, gke_cluster_version, feature_gates))


@app.command()
def down(
    strategy: DeploymentStrategy = typer.Option(..., "--deployment-strategy", help="gce or gke"),
    zone: str | None = typer.Option(None, "--gce-zone", help="Cluster zone"),
    k8s_dir: Path | None = typer.Option(None, "--k8s-dir", help="Built kubernetes tree (gce)"),
) -> None:
    """Tear down a test cluster."""
    cluster_down(strategy, _cluster_params(zone, k8s_dir, None))
