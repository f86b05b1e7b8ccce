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


"""Tests for cluster bring-up and teardown dispatch."""

from __future__ import annotations

import pytest

from k8s_integration import cluster
from k8s_integration.cluster import ClusterParams, cluster_down, cluster_up
from k8s_integration.config import DeploymentStrategy
from k8s_integration.constants import REL_E2E_DOWN, REL_E2E_UP


@pytest.fixture
def commands(monkeypatch):
    calls = []
    monkeypatch.setattr(cluster, "run_command",
                        lambda action, cmd, *args, **kwargs: calls.append((cmd, args, kwargs)))
    return calls


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValueError, match="must be set to 'gce' or 'gke'"):
        cluster_up("aws", ClusterParams(zone="us-central1-b"))


def test_gce_needs_a_kubernetes_tree(commands):
    with pytest.raises(RuntimeError, match="Kubernetes source tree"):
        cluster_down(DeploymentStrategy.GCE, ClusterParams(zone="us-central1-b"))
    assert commands == []


def test_gce_bring_up_runs_e2e_up_with_zone_and_gates(tmp_path, commands):
    params = ClusterParams(zone="us-central1-b", k8s_dir=tmp_path, feature_gates="CSIMigration=true")
    cluster_up("gce", params)

    cmd, args, kwargs = commands[0]
    assert cmd == tmp_path / REL_E2E_UP
    assert args == ()
    assert kwargs["_env"]["KUBE_GCE_ZONE"] == "us-central1-b"
    assert kwargs["_env"]["KUBE_FEATURE_GATES"] == "CSIMigration=true"


def test_gce_teardown_runs_e2e_down(tmp_path, commands):
    cluster_down(DeploymentStrategy.GCE, ClusterParams(zone="us-central1-b", k8s_dir=tmp_path))
    assert commands[0][0] == tmp_path / REL_E2E_DOWN


def test_gke_bring_up_replaces_existing_cluster(monkeypatch, commands):
    monkeypatch.setattr(cluster, "gke_cluster_exists", lambda params: True)
    params = ClusterParams(zone="us-central1-b", gke_cluster_name="pd-test", gke_cluster_version="1.14")

    cluster_up(DeploymentStrategy.GKE, params)

    assert [args[:3] for _, args, _ in commands] == [
        ("container", "clusters", "delete"),
        ("container", "clusters", "create"),
    ]
    create_args = commands[1][1]
    assert "pd-test" in create_args
    assert create_args[create_args.index("--cluster-version") + 1] == "1.14"


def test_gke_bring_up_retries_failed_creation(monkeypatch):
    monkeypatch.setattr(cluster, "CLUSTER_CREATE_RETRY_WAIT_SECONDS", 0)
    monkeypatch.setattr(cluster, "gke_cluster_exists", lambda params: False)
    attempts = []

    def _flaky(action, cmd, *args, **kwargs):
        attempts.append(args[2])
        if len(attempts) < 3:
            raise RuntimeError("quota exceeded")

    monkeypatch.setattr(cluster, "run_command", _flaky)
    cluster_up("gke", ClusterParams(zone="us-central1-b", gke_cluster_version="1.14", max_retries=3))
    assert attempts == ["create", "create", "create"]


def test_gke_bring_up_gives_up_after_max_retries(monkeypatch):
    monkeypatch.setattr(cluster, "CLUSTER_CREATE_RETRY_WAIT_SECONDS", 0)
    monkeypatch.setattr(cluster, "gke_cluster_exists", lambda params: False)

    def _fail(action, cmd, *args, **kwargs):
        raise RuntimeError("quota exceeded")

    monkeypatch.setattr(cluster, "run_command", _fail)
    with pytest.raises(RuntimeError, match="quota exceeded"):
        cluster_up("gke", ClusterParams(zone="us-central1-b", gke_cluster_version="1.14", max_retries=2))


def test_gke_teardown_deletes_named_cluster(commands):
    cluster_down("gke", ClusterParams(zone="europe-west1-b", gke_cluster_name="pd-test"))
    cmd, args, _ = commands[0]
    assert cmd == "gcloud"
    assert args == ("container", "clusters", "delete", "pd-test", "--zone", "europe-west1-b", "--quiet")
