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


"""Kubernetes source download and build."""

from __future__ import annotations

import shutil
from pathlib import Path

from rich.panel import Panel

from k8s_integration import console
from k8s_integration.constants import (
    K8S_BUILD_TARGET,
    KUBERNETES_ARCHIVE_URL,
    KUBERNETES_MASTER,
    KUBERNETES_REPO_URL,
)
from k8s_integration.utils import run_command


def archive_dir_name(version: str) -> str:
    """Directory a GitHub source archive of *version* extracts to.

    GitHub drops the leading ``v`` of a release tag: ``v1.14.0`` unpacks to
    ``kubernetes-1.14.0``.
    """
    return f"kubernetes-{version[1:] if version.startswith('v') else version}"


def download_kubernetes_source(parent_dir: Path, version: str) -> Path:
    """Download Kubernetes source for *version* into ``parent_dir/kubernetes``.

    ``master`` is cloned rather than taken from an archive. The build version
    is derived from git tags, and an archive has no tags.

    Args:
        parent_dir: Directory that will contain the ``kubernetes`` checkout.
        version: Release tag or ``master``.

    Returns:
        Path of the kubernetes source tree.

    Raises:
        sh.ErrorReturnCode: If git, curl or tar fail.
    """
    k8s_dir = parent_dir / "kubernetes"
    parent_dir.mkdir(parents=True, exist_ok=True)

    if version == KUBERNETES_MASTER:
        run_command("Cloning Kubernetes master", "git", "clone", KUBERNETES_REPO_URL, str(k8s_dir))
        return k8s_dir

    tarball = parent_dir / f"kubernetes-{version}.tar.gz"
    run_command(f"Downloading Kubernetes {version}", "curl", "-sSfL",
                KUBERNETES_ARCHIVE_URL.format(version=version), "-o", str(tarball))
    run_command("Extracting Kubernetes source", "tar", "-C", str(parent_dir), "-xzf", str(tarball))
    shutil.rmtree(k8s_dir, ignore_errors=True)
    (parent_dir / archive_dir_name(version)).rename(k8s_dir)
    tarball.unlink()
    return k8s_dir


def build_kubernetes(k8s_dir: Path) -> None:
    """Build Kubernetes binaries and the e2e test suite."""
    run_command("Building Kubernetes", "make", "-C", str(k8s_dir), K8S_BUILD_TARGET)


def download_and_build(parent_dir: Path, version: str) -> Path:
    """Download and build Kubernetes *version* under *parent_dir*.

    Returns:
        Path of the built kubernetes source tree.
    """
    console.print(Panel.fit(f"Building Kubernetes {version}", style="bold blue"))
    k8s_dir = download_kubernetes_source(parent_dir, version)
    build_kubernetes(k8s_dir)
    console.print(f"[green]\u2705 Kubernetes {version} built in {k8s_dir}[/green]")
    return k8s_dir
