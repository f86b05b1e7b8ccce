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


"""Constants for the integration runner: paths, names, and external tool arguments."""

from __future__ import annotations

import os
from pathlib import Path


def default_pkg_dir() -> Path:
    """Locate the driver source tree.

    Returns:
        ``$GOPATH/src/sigs.k8s.io/gcp-compute-persistent-disk-csi-driver`` when
        ``GOPATH`` is set, otherwise the current working directory.
    """
    go_path = os.environ.get("GOPATH")
    if go_path:
        return Path(go_path) / "src" / DRIVER_MODULE_PATH
    return Path.cwd()


DRIVER_MODULE_PATH = "sigs.k8s.io/gcp-compute-persistent-disk-csi-driver"

# -- Pipeline slots (fixed order decides which failure is reported) --
SLOT_BUILD_CLUSTER_SOURCE = "build-cluster-source"
SLOT_BUILD_TEST_SOURCE = "build-test-source"
SLOT_PUSH_DRIVER_IMAGE = "push-driver-image"
SLOT_BRING_UP_CLUSTER = "bring-up-cluster"
PROVISIONING_SLOTS = (
    SLOT_BUILD_CLUSTER_SOURCE,
    SLOT_BUILD_TEST_SOURCE,
    SLOT_PUSH_DRIVER_IMAGE,
    SLOT_BRING_UP_CLUSTER,
)

# -- Sequential stages --
STAGE_INSTALL_DRIVER = "install-driver"
STAGE_RUN_TESTS = "run-tests"

# -- Kubernetes source --
KUBERNETES_REPO_URL = "https://github.com/kubernetes/kubernetes"
KUBERNETES_ARCHIVE_URL = "https://github.com/kubernetes/kubernetes/archive/{version}.tar.gz"
KUBERNETES_MASTER = "master"
K8S_BUILD_TARGET = "quick-release"
K8S_BUILD_BIN_DIR = "_output/dockerized/bin/linux/amd64"
REL_E2E_UP = "hack/e2e-internal/e2e-up.sh"
REL_E2E_DOWN = "hack/e2e-internal/e2e-down.sh"
REL_CLUSTER_KUBECTL = "cluster/kubectl.sh"

# -- GKE --
GKE_TEST_CLUSTER_NAME = "gcp-pd-csi-driver-test-cluster"
DEFAULT_CLUSTER_CREATE_MAX_RETRIES = 1
CLUSTER_CREATE_RETRY_WAIT_SECONDS = 30

# -- Driver --
PD_IMAGE_PLACEHOLDER = "gke.gcr.io/gcp-compute-persistent-disk-csi-driver"
DRIVER_NAMESPACE = "gce-pd-csi-driver"
DRIVER_DOCKERFILE = "Dockerfile"
SA_FILE_NAME = "cloud-sa.json"
REL_INSTALL_KUSTOMIZE = "deploy/kubernetes/install-kustomize.sh"
REL_DEPLOY_DRIVER = "deploy/kubernetes/deploy-driver.sh"
REL_DELETE_DRIVER = "deploy/kubernetes/delete-driver.sh"
REL_OVERLAYS_DIR = "deploy/kubernetes/overlays"
REL_KUSTOMIZE_BIN = "bin/kustomize"
DRIVER_READY_TIMEOUT = "5m"
IMAGE_DELETE_MAX_RETRIES = 3
IMAGE_DELETE_RETRY_WAIT_SECONDS = 5

# -- Environment variables handed to external scripts --
ENV_GCE_ZONE = "KUBE_GCE_ZONE"
ENV_FEATURE_GATES = "KUBE_FEATURE_GATES"
ENV_CLUSTER_KUBECTL = "GCE_PD_KUBECTL"
ENV_SA_DIR = "GCE_PD_SA_DIR"
ENV_DRIVER_VERSION = "GCE_PD_DRIVER_VERSION"
ENV_ARTIFACTS = "ARTIFACTS"

# -- e2e test run --
REL_TEST_CONFIG_DIR = "test/k8s-integration/config"
TEST_CONFIG_FILE = "test-config.yaml"
TEST_DRIVER_NAME = "csi-gcepd"
TEST_DRIVER_FS_TYPES = ("ext2", "ext3", "ext4", "xfs")
TEST_DRIVER_CAPABILITIES = ("persistence", "block", "fsGroup", "exec", "multipods", "topology")
TEST_DRIVER_MIN_SIZE = "5Gi"
TEST_SKIP_REGEX = r"\[Disruptive\]|\[Serial\]|\[Feature:.+\]"
TEST_PROVIDER = "gce"
TEST_NODE_OS_DISTRO = "cos"
MIGRATED_PLUGINS = "kubernetes.io/gce-pd"
