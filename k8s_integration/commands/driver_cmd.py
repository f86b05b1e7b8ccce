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


"""Driver subcommands (install, delete)."""

from __future__ import annotations

from pathlib import Path

import typer

from k8s_integration.config import RunConfiguration
from k8s_integration.driver import DriverParams, delete_driver, install_driver

app = typer.Typer(help="Install or delete the driver on the current cluster.")


@app.command()
def install(
    overlay: str = typer.Option(..., "--deploy-overlay-name", help="Kustomize overlay"),
    service_account_file: Path = typer.Option(..., "--service-account-file", help="Service account key"),
    staging_image: str | None = typer.Option(None, "--staging-image", help="Staged image repository"),
    staging_version: str | None = typer.Option(None, "--staging-version", help="Staged image tag"),
    pkg_dir: Path | None = typer.Option(None, "--pkg-dir", help="Driver source tree"),
) -> None:
    """Deploy the driver, optionally pointing the overlay at a staged image."""
    if bool(staging_image) != bool(staging_version):
        raise typer.BadParameter("--staging-image and --staging-version must be set together")
    install_driver(DriverParams(
        pkg_dir=pkg_dir or RunConfiguration().pkg_dir,
        overlay=overlay,
        service_account_file=service_account_file,
        staging_image=staging_image or "",
        staging_version=staging_version or "",
        use_staged_image=bool(staging_image),
    ))


@app.command()
def delete(
    overlay: str = typer.Option(..., "--deploy-overlay-name", help="Kustomize overlay"),
    pkg_dir: Path | None = typer.Option(None, "--pkg-dir", help="Driver source tree"),
) -> None:
    """Delete the driver."""
    delete_driver(DriverParams(pkg_dir=pkg_dir or RunConfiguration().pkg_dir, overlay=overlay))
