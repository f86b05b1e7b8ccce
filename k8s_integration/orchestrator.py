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


"""Pipeline driver: parallel provisioning, driver install, test run, and teardown."""

from __future__ import annotations

import tempfile
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from rich.panel import Panel

from k8s_integration import console
from k8s_integration.cluster import ClusterParams, cluster_down, cluster_up
from k8s_integration.config import DeploymentStrategy, RunConfiguration, TestMode
from k8s_integration.constants import (
    KUBERNETES_MASTER,
    PROVISIONING_SLOTS,
    REL_CLUSTER_KUBECTL,
    SLOT_BRING_UP_CLUSTER,
    SLOT_BUILD_CLUSTER_SOURCE,
    SLOT_BUILD_TEST_SOURCE,
    SLOT_PUSH_DRIVER_IMAGE,
    STAGE_INSTALL_DRIVER,
    STAGE_RUN_TESTS,
)
from k8s_integration.driver import (
    DriverParams,
    delete_driver,
    delete_driver_image,
    install_driver,
    push_driver_image,
)
from k8s_integration.e2e_suite import TestRunParams, run_direct_tests, run_migration_tests
from k8s_integration.source import download_and_build
from k8s_integration.tasks import (
    SKIP_NOT_REQUIRED,
    DependencyGate,
    Outcome,
    OutcomeAggregator,
    OutcomeStatus,
    PipelineResult,
    Task,
    TaskLauncher,
)
from k8s_integration.teardown import TeardownStack
from k8s_integration.utils import process_umask, require_command


@dataclass(frozen=True)
class ExternalOperations:
    """The external actions the pipeline composes; swap them out to test the pipeline."""

    build_source: Callable[[Path, str], object] = download_and_build
    push_driver_image: Callable[[Path, str, str], object] = push_driver_image
    delete_driver_image: Callable[[str, str], object] = delete_driver_image
    cluster_up: Callable[[DeploymentStrategy, ClusterParams], object] = cluster_up
    cluster_down: Callable[[DeploymentStrategy, ClusterParams], object] = cluster_down
    install_driver: Callable[[DriverParams], object] = install_driver
    delete_driver: Callable[[DriverParams], object] = delete_driver
    run_direct_tests: Callable[[TestRunParams, str], object] = run_direct_tests
    run_migration_tests: Callable[[TestRunParams], object] = run_migration_tests


@dataclass
class RunContext:
    """Values shared between pipeline phases for one run.

    Attributes:
        workdir: Scratch directory for downloaded sources.
        staging_version: Tag the driver image is staged under.
        k8s_dir: Kubernetes tree backing the cluster, if any.
        test_dir: Kubernetes tree the tests run from, if any.
        cluster_kubectl: Cluster-bundled kubectl found by bring-up, if any.
    """

    workdir: Path
    staging_version: str = field(default_factory=lambda: str(uuid.uuid4()))
    k8s_dir: Path | None = None
    test_dir: Path | None = None
    cluster_kubectl: Path | None = None

    @classmethod
    def create(cls, cfg: RunConfiguration, workdir: Path) -> RunContext:
        workdir = workdir.resolve()
        ctx = cls(workdir=workdir)
        if cfg.build_cluster_source:
            ctx.k8s_dir = workdir / "cluster" / "kubernetes"
        elif cfg.local_k8s_dir is not None:
            ctx.k8s_dir = cfg.local_k8s_dir.resolve()
        if cfg.build_test_source:
            ctx.test_dir = workdir / "test" / "kubernetes"
        else:
            ctx.test_dir = ctx.k8s_dir
        return ctx

    def cluster_params(self, cfg: RunConfiguration) -> ClusterParams:
        return ClusterParams(
            zone=cfg.gce_zone,
            k8s_dir=self.k8s_dir,
            feature_gates=cfg.kube_feature_gates,
            gke_cluster_name=cfg.gke_cluster_name,
            gke_cluster_version=cfg.gke_cluster_version,
            max_retries=cfg.cluster_create_max_retries,
        )

    def driver_params(self, cfg: RunConfiguration) -> DriverParams:
        return DriverParams(
            pkg_dir=cfg.pkg_dir.resolve(),
            overlay=cfg.deploy_overlay_name,
            service_account_file=cfg.service_account_file,
            staging_image=cfg.staging_image,
            staging_version=self.staging_version,
            use_staged_image=cfg.do_driver_build,
            kubectl=self.cluster_kubectl,
        )

    def test_params(self, cfg: RunConfiguration) -> TestRunParams:
        if self.test_dir is None:
            raise RuntimeError("no Kubernetes tree available to run tests from")
        return TestRunParams(
            pkg_dir=cfg.pkg_dir.resolve(),
            test_dir=self.test_dir,
            focus=cfg.test_focus,
            zone=cfg.gce_zone,
        )


# ============================================================================
# Internal helpers
# ============================================================================

def check_prerequisites(cfg: RunConfiguration) -> None:
    """Check the CLI tools this run will call.

    Raises:
        RuntimeError: If a required tool is missing.
    """
    prereqs = ["kubectl"]
    versions = [v for v, needed in ((cfg.kube_version, cfg.build_cluster_source),
                                    (cfg.test_version, cfg.build_test_source)) if needed]
    if any(v == KUBERNETES_MASTER for v in versions):
        prereqs.append("git")
    if any(v != KUBERNETES_MASTER for v in versions):
        prereqs.extend(["curl", "tar"])
    if versions:
        prereqs.append("make")
    uses_gke = cfg.deployment_strategy is DeploymentStrategy.GKE
    if uses_gke or (cfg.do_driver_build and cfg.teardown_cluster):
        prereqs.append("gcloud")
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in prereqs:
        require_command(cmd)
    console.print("[green]\u2705 All required tools are available[/green]")


def _bring_up_cluster(cfg: RunConfiguration, ctx: RunContext, ops: ExternalOperations) -> None:
    """Bring-up task body; records the cluster-bundled kubectl for later phases."""
    if cfg.deployment_strategy is DeploymentStrategy.GCE and ctx.k8s_dir is not None:
        kubectl = ctx.k8s_dir / REL_CLUSTER_KUBECTL
        if kubectl.exists():
            ctx.cluster_kubectl = kubectl
        else:
            console.print(f"[yellow]\u26a0\ufe0f  Could not find cluster kubectl at {kubectl}, "
                          "falling back to default kubectl[/yellow]")
    ops.cluster_up(cfg.deployment_strategy, ctx.cluster_params(cfg))


def _provisioning_tasks(cfg: RunConfiguration, ctx: RunContext, ops: ExternalOperations) -> list[Task]:
    """Declare the four provisioning slots; steps this run does not need get no operation."""
    build_gate = DependencyGate() if cfg.build_cluster_source else DependencyGate(proceed=True)

    def _when(needed: bool, fn: Callable[[], object]) -> Callable[[], object] | None:
        return fn if needed else None

    return [
        Task(
            SLOT_BUILD_CLUSTER_SOURCE,
            _when(cfg.build_cluster_source,
                  lambda: ops.build_source(ctx.k8s_dir.parent, cfg.kube_version)),
            signals=build_gate,
        ),
        Task(
            SLOT_BUILD_TEST_SOURCE,
            _when(cfg.build_test_source,
                  lambda: ops.build_source(ctx.test_dir.parent, cfg.test_version)),
        ),
        Task(
            SLOT_PUSH_DRIVER_IMAGE,
            _when(cfg.do_driver_build,
                  lambda: ops.push_driver_image(cfg.pkg_dir, cfg.staging_image, ctx.staging_version)),
        ),
        Task(
            SLOT_BRING_UP_CLUSTER,
            _when(cfg.bringup_cluster, lambda: _bring_up_cluster(cfg, ctx, ops)),
            waits_on=build_gate,
        ),
    ]


def _print_task_output(outcomes: list[Outcome]) -> None:
    for outcome in outcomes:
        if outcome.output:
            console.print(outcome.output, end="", markup=False, highlight=False)
        if outcome.status is OutcomeStatus.SKIPPED and outcome.cause != SKIP_NOT_REQUIRED:
            console.print(f"[yellow]\u26a0\ufe0f  {outcome.describe()}[/yellow]")
        elif outcome.status is OutcomeStatus.FAILED:
            console.print(f"[red]\u274c {outcome.describe()}[/red]")


def _succeeded(outcomes: dict[str, Outcome], slot: str) -> bool:
    outcome = outcomes.get(slot)
    return outcome is not None and outcome.status is OutcomeStatus.SUCCEEDED


def _register_acquisitions(
    cfg: RunConfiguration,
    ctx: RunContext,
    ops: ExternalOperations,
    outcomes: dict[str, Outcome],
    teardown: TeardownStack,
) -> None:
    """Push teardown entries for provisioning steps that acquired something, in slot order."""
    if not cfg.teardown_cluster:
        return

    if _succeeded(outcomes, SLOT_PUSH_DRIVER_IMAGE):
        image, tag = cfg.staging_image, ctx.staging_version
        teardown.push(f"driver image {image}:{tag}", lambda: ops.delete_driver_image(image, tag))

    if _succeeded(outcomes, SLOT_BRING_UP_CLUSTER):
        strategy, params = cfg.deployment_strategy, ctx.cluster_params(cfg)
        teardown.push(f"{strategy.value} cluster", lambda: ops.cluster_down(strategy, params))


def provision(
    cfg: RunConfiguration,
    ctx: RunContext,
    ops: ExternalOperations,
    teardown: TeardownStack,
) -> PipelineResult:
    """Run the provisioning tasks concurrently and aggregate their outcomes.

    All tasks run to completion even when one fails early. Teardown entries
    are registered for whatever was acquired even if the wait is interrupted.

    Returns:
        Success, or the failed outcome in the lowest slot.
    """
    console.print(Panel.fit("Provisioning", style="bold blue"))
    tasks = _provisioning_tasks(cfg, ctx, ops)
    aggregator = OutcomeAggregator(PROVISIONING_SLOTS)

    try:
        with TaskLauncher(max_workers=len(tasks)) as launcher:
            for task in tasks:
                aggregator.track(task.name, launcher.launch(task))
            result = aggregator.wait()
    finally:
        # the launcher has drained, so every surviving task has reported
        aggregator.collect_done()
        outcomes = aggregator.outcomes()
        _print_task_output(outcomes)
        _register_acquisitions(cfg, ctx, ops, {o.task: o for o in outcomes}, teardown)
    return result


def install_and_test(
    cfg: RunConfiguration,
    ctx: RunContext,
    ops: ExternalOperations,
    teardown: TeardownStack,
) -> PipelineResult:
    """Install the driver, then run the configured test mode.

    Returns:
        Success, or the failed stage's outcome.
    """
    driver_params = ctx.driver_params(cfg)
    try:
        ops.install_driver(driver_params)
    except Exception as err:
        return PipelineResult.failed(Outcome.failed(STAGE_INSTALL_DRIVER, err))
    if cfg.teardown_driver:
        teardown.push("driver installation", lambda: ops.delete_driver(driver_params))

    try:
        test_params = ctx.test_params(cfg)
        if cfg.test_mode is TestMode.MIGRATION:
            ops.run_migration_tests(test_params)
        else:
            ops.run_direct_tests(test_params, cfg.storageclass_file)
    except Exception as err:
        return PipelineResult.failed(Outcome.failed(STAGE_RUN_TESTS, err))
    return PipelineResult.success()


# ============================================================================
# Public API
# ============================================================================

def run_pipeline(cfg: RunConfiguration, ops: ExternalOperations | None = None) -> PipelineResult:
    """Provision, install, test, and tear down for one validated configuration.

    Teardown always runs before this returns; its failures are logged and
    never change the result.

    Args:
        cfg: Validated run configuration.
        ops: External operations, or None for the real ones.

    Returns:
        The run's result.
    """
    if ops is None:
        ops = ExternalOperations()
    teardown = TeardownStack()

    with process_umask(0), tempfile.TemporaryDirectory(
        prefix="k8s-integration-", ignore_cleanup_errors=True,
    ) as workdir:
        ctx = RunContext.create(cfg, Path(workdir))
        try:
            result = provision(cfg, ctx, ops, teardown)
            if result.ok:
                result = install_and_test(cfg, ctx, ops, teardown)
        finally:
            teardown.unwind_all()
    return result
