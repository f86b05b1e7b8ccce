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


"""Driver image staging and driver installation."""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path

import docker
import sh
from rich.panel import Panel
from tenacity import retry, stop_after_attempt, wait_fixed

from k8s_integration import console
from k8s_integration.constants import (
    DRIVER_DOCKERFILE,
    DRIVER_NAMESPACE,
    DRIVER_READY_TIMEOUT,
    ENV_CLUSTER_KUBECTL,
    ENV_DRIVER_VERSION,
    ENV_SA_DIR,
    IMAGE_DELETE_MAX_RETRIES,
    IMAGE_DELETE_RETRY_WAIT_SECONDS,
    PD_IMAGE_PLACEHOLDER,
    REL_DELETE_DRIVER,
    REL_DEPLOY_DRIVER,
    REL_INSTALL_KUSTOMIZE,
    REL_KUSTOMIZE_BIN,
    REL_OVERLAYS_DIR,
    SA_FILE_NAME,
)
from k8s_integration.utils import command_env, run_command


@dataclass(frozen=True)
class DriverParams:
    """Everything driver install and delete need.

    Attributes:
        pkg_dir: Root of the driver source tree.
        overlay: Kustomize overlay to deploy.
        service_account_file: Service account key for the driver secret.
        staging_image: Repository of the staged driver image.
        staging_version: Tag of the staged driver image.
        use_staged_image: Whether to point the overlay at the staged image.
        kubectl: Cluster-specific kubectl to deploy with, or None for PATH kubectl.
    """

    pkg_dir: Path
    overlay: str
    service_account_file: Path | None = None
    staging_image: str = ""
    staging_version: str = ""
    use_staged_image: bool = False
    kubectl: Path | None = None

    @property
    def overlay_dir(self) -> Path:
        return self.pkg_dir / REL_OVERLAYS_DIR / self.overlay

    @property
    def image_ref(self) -> str:
        return f"{self.staging_image}:{self.staging_version}"

    def script_env(self, **extra: str) -> dict[str, str]:
        return command_env({
            ENV_DRIVER_VERSION: self.overlay,
            ENV_CLUSTER_KUBECTL: self.kubectl,
            **extra,
        })


# ============================================================================
# Driver image
# ============================================================================

def push_driver_image(pkg_dir: Path, image: str, tag: str) -> None:
    """Build the driver image from source and push it to the staging registry.

    Args:
        pkg_dir: Root of the driver source tree (the docker build context).
        image: Staging image repository.
        tag: Staging image tag.

    Raises:
        RuntimeError: If the build or the push fails.
    """
    image_ref = f"{image}:{tag}"
    console.print(Panel.fit(f"Building and pushing {image_ref}", style="bold blue"))
    docker_client = docker.from_env()
    try:
        docker_client.images.build(path=str(pkg_dir), dockerfile=DRIVER_DOCKERFILE, tag=image_ref, rm=True)
        console.print(f"[green]  \u2713 Built {image_ref}[/green]")
        for line in docker_client.images.push(image, tag=tag, stream=True, decode=True):
            if "error" in line:
                raise RuntimeError(f"failed to push {image_ref}: {line['error']}")
    except docker.errors.BuildError as err:
        raise RuntimeError(f"failed to build {image_ref}: {err}") from err
    except docker.errors.APIError as err:
        raise RuntimeError(f"Docker API error for {image_ref}: {err}") from err
    finally:
        docker_client.close()
    console.print(f"[green]\u2705 Pushed {image_ref}[/green]")


@retry(
    stop=stop_after_attempt(IMAGE_DELETE_MAX_RETRIES),
    wait=wait_fixed(IMAGE_DELETE_RETRY_WAIT_SECONDS),
    reraise=True,
)
def delete_driver_image(image: str, tag: str) -> None:
    """Delete the staged driver image from the registry.

    Raises:
        sh.ErrorReturnCode: If gcloud still fails after all retries.
    """
    run_command(f"Deleting image {image}:{tag}",
                "gcloud", "container", "images", "delete", f"{image}:{tag}", "--quiet")


# ============================================================================
# Driver install / delete
# ============================================================================

def _absolute(params: DriverParams) -> DriverParams:
    # deploy scripts run with the source tree as cwd
    return replace(params, pkg_dir=params.pkg_dir.resolve())


def _set_overlay_image(params: DriverParams) -> None:
    """Point the overlay's image placeholder at the staged image."""
    run_command("Installing kustomize", params.pkg_dir / REL_INSTALL_KUSTOMIZE, _cwd=str(params.pkg_dir))
    run_command(
        f"Setting overlay '{params.overlay}' image to {params.image_ref}",
        params.pkg_dir / REL_KUSTOMIZE_BIN, "edit", "set", "image",
        f"{PD_IMAGE_PLACEHOLDER}={params.image_ref}",
        _cwd=str(params.overlay_dir),
    )


def _wait_for_driver_pods(params: DriverParams) -> None:
    kubectl = str(params.kubectl) if params.kubectl else "kubectl"
    console.print("[yellow]\u2139\ufe0f  Waiting for driver pods to be ready...[/yellow]")
    sh.Command(kubectl)("wait", "--for=condition=Ready", "pods", "--all",
                        "-n", DRIVER_NAMESPACE, f"--timeout={DRIVER_READY_TIMEOUT}")
    console.print("[green]\u2705 Driver pods are ready[/green]")


def install_driver(params: DriverParams) -> None:
    """Deploy the driver into the cluster and wait for it to become ready.

    Raises:
        RuntimeError: If no service account file is configured.
        sh.ErrorReturnCode: If any deploy step fails.
    """
    console.print(Panel.fit(f"Installing driver (overlay: {params.overlay})", style="bold blue"))
    if params.service_account_file is None:
        raise RuntimeError("a service account file is required to install the driver")
    params = _absolute(params)

    if params.use_staged_image:
        _set_overlay_image(params)

    # deploy-driver.sh reads the key from GCE_PD_SA_DIR under a fixed file name
    with tempfile.TemporaryDirectory(prefix="pd-sa-") as sa_dir:
        shutil.copyfile(params.service_account_file, Path(sa_dir) / SA_FILE_NAME)
        run_command(
            "Deploying driver",
            params.pkg_dir / REL_DEPLOY_DRIVER, "--skip-sa-check",
            _env=params.script_env(**{ENV_SA_DIR: sa_dir}),
            _cwd=str(params.pkg_dir),
        )

    _wait_for_driver_pods(params)
    console.print("[green]\u2705 Driver installed[/green]")


def delete_driver(params: DriverParams) -> None:
    """Remove the driver from the cluster."""
    params = _absolute(params)
    run_command(
        "Deleting driver",
        params.pkg_dir / REL_DELETE_DRIVER,
        _env=params.script_env(),
        _cwd=str(params.pkg_dir),
    )
