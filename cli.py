#!/usr/bin/env python3
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


"""
cli.py - CLI for the GCE PD CSI driver Kubernetes integration tests.

Subcommands:
    run      Provision a cluster, install the driver, run e2e tests, tear down
    cluster  Bring a test cluster up or down (gce, gke)
    driver   Install or delete the driver on the current cluster

Examples:
    # Build k8s 1.14, bring up a GCE cluster, stage the driver, run CSI tests
    ./cli.py run --deployment-strategy gce --kube-version v1.14.0 --gce-zone us-central1-b \\
        --staging-image gcr.io/my-project/gcp-persistent-disk-csi-driver \\
        --service-account-file ~/sa.json --deploy-overlay-name dev \\
        --storageclass-file sc-standard.yaml --test-focus "External.Storage"

    # Reuse an existing cluster and a local kubernetes checkout
    ./cli.py run --no-bringup-cluster --no-teardown-cluster --local-k8s-dir ~/k8s ...

    # Tear down a leftover GKE cluster
    ./cli.py cluster down --deployment-strategy gke --gce-zone us-central1-b

All run options can also be set via E2E_* environment variables
(e.g. E2E_GCE_ZONE, E2E_STAGING_IMAGE).
"""

from __future__ import annotations

import logging
import sys

import typer

from k8s_integration import console
from k8s_integration.commands import cluster_cmd, driver_cmd, run_cmd

app = typer.Typer(
    help="GCE PD CSI driver Kubernetes integration tests.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.command(name="run")(run_cmd.run)
app.add_typer(cluster_cmd.app, name="cluster")
app.add_typer(driver_cmd.app, name="driver")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
