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


"""End-to-end pipeline tests against recorded fake external operations."""

from __future__ import annotations

import errno
import os
import shutil
import sys
from pathlib import Path

import pytest

from k8s_integration.config import DeploymentStrategy, TestMode
from k8s_integration.constants import (
    SLOT_BRING_UP_CLUSTER,
    SLOT_BUILD_CLUSTER_SOURCE,
    SLOT_BUILD_TEST_SOURCE,
    SLOT_PUSH_DRIVER_IMAGE,
    STAGE_INSTALL_DRIVER,
    STAGE_RUN_TESTS,
)
from k8s_integration.orchestrator import RunContext, _provisioning_tasks, provision, run_pipeline
from k8s_integration.teardown import TeardownStack

PROVISIONING_CALLS = {"build_source:v1.14.0", "push_driver_image", "cluster_up"}


def _after_provisioning(calls: list[str]) -> list[str]:
    return [c for c in calls if c not in PROVISIONING_CALLS]


# ============================================================================
# Full pipeline runs
# ============================================================================

def test_happy_path_installs_tests_and_tears_down_in_reverse(make_config, fake_ops):
    fake = fake_ops()
    result = run_pipeline(make_config(), fake.operations())

    assert result.ok
    assert set(fake.calls[:3]) == PROVISIONING_CALLS
    assert fake.calls.index("build_source:v1.14.0") < fake.calls.index("cluster_up")
    assert _after_provisioning(fake.calls) == [
        "install_driver",
        "run_direct_tests",
        "delete_driver",
        "cluster_down",
        "delete_driver_image",
    ]


def test_cluster_build_failure_skips_bring_up_and_everything_after(make_config, fake_ops):
    fake = fake_ops(fail={"build_source:v1.14.0": RuntimeError("make quick-release failed")})
    result = run_pipeline(make_config(do_driver_build=False), fake.operations())

    assert not result.ok
    assert result.failure.task == SLOT_BUILD_CLUSTER_SOURCE
    assert result.message == f"Step '{SLOT_BUILD_CLUSTER_SOURCE}' failed: make quick-release failed"
    assert fake.calls == ["build_source:v1.14.0"]


def test_cluster_build_failure_still_releases_pushed_image(make_config, fake_ops):
    fake = fake_ops(fail={"build_source:v1.14.0": RuntimeError("boom")})
    result = run_pipeline(make_config(), fake.operations())

    assert result.failure.task == SLOT_BUILD_CLUSTER_SOURCE
    assert "cluster_up" not in fake.calls
    assert "install_driver" not in fake.calls
    assert "cluster_down" not in fake.calls
    assert fake.calls[-1] == "delete_driver_image"


def test_failure_is_reported_by_slot_not_by_arrival(make_config, fake_ops):
    fake = fake_ops(fail={
        "push_driver_image": RuntimeError("push denied"),
        "cluster_up": RuntimeError("quota"),
    })
    result = run_pipeline(make_config(), fake.operations())

    assert result.failure.task == SLOT_PUSH_DRIVER_IMAGE
    assert "delete_driver_image" not in fake.calls
    assert "cluster_down" not in fake.calls


def test_test_failure_with_broken_cleanup_reports_the_test_failure(make_config, fake_ops):
    fake = fake_ops(fail={
        "run_direct_tests": RuntimeError("ginkgo exited 1"),
        "cluster_down": RuntimeError("e2e-down.sh failed"),
    })
    result = run_pipeline(make_config(), fake.operations())

    assert not result.ok
    assert result.failure.task == STAGE_RUN_TESTS
    assert result.failure.cause == "ginkgo exited 1"
    assert _after_provisioning(fake.calls) == [
        "install_driver",
        "run_direct_tests",
        "delete_driver",
        "cluster_down",
        "delete_driver_image",
    ]


def test_install_failure_skips_tests_and_driver_teardown(make_config, fake_ops):
    fake = fake_ops(fail={"install_driver": RuntimeError("deploy-driver.sh failed")})
    result = run_pipeline(make_config(), fake.operations())

    assert result.failure.task == STAGE_INSTALL_DRIVER
    assert _after_provisioning(fake.calls) == ["install_driver", "cluster_down", "delete_driver_image"]


def test_without_teardown_flags_nothing_is_released(make_config, fake_ops):
    fake = fake_ops()
    result = run_pipeline(make_config(teardown_cluster=False, teardown_driver=False), fake.operations())

    assert result.ok
    assert _after_provisioning(fake.calls) == ["install_driver", "run_direct_tests"]


def test_existing_cluster_and_prebuilt_driver(make_config, fake_ops, tmp_path):
    k8s_dir = tmp_path / "kubernetes"
    fake = fake_ops()
    cfg = make_config(
        bringup_cluster=False,
        teardown_cluster=False,
        kube_version="",
        local_k8s_dir=k8s_dir,
        do_driver_build=False,
    )
    result = run_pipeline(cfg, fake.operations())

    assert result.ok
    assert fake.calls == ["install_driver", "run_direct_tests", "delete_driver"]
    test_params, storageclass = fake.args["run_direct_tests"]
    assert test_params.test_dir == k8s_dir.resolve()
    assert storageclass == "sc-standard.yaml"


def test_migration_mode_runs_migration_suite(make_config, fake_ops):
    fake = fake_ops()
    cfg = make_config(migration_test=True, storageclass_file="")
    assert cfg.test_mode is TestMode.MIGRATION

    assert run_pipeline(cfg, fake.operations()).ok
    assert "run_migration_tests" in fake.calls
    assert "run_direct_tests" not in fake.calls


def test_separate_test_source_is_built(make_config, fake_ops):
    fake = fake_ops()
    cfg = make_config(test_version="v1.15.0")
    assert run_pipeline(cfg, fake.operations()).ok

    assert "build_source:v1.15.0" in fake.calls
    test_params, _ = fake.args["run_direct_tests"]
    assert test_params.test_dir.parts[-2:] == ("test", "kubernetes")


def test_gke_bring_up_passes_strategy_and_cluster_params(make_config, fake_ops):
    fake = fake_ops()
    cfg = make_config(
        deployment_strategy=DeploymentStrategy.GKE,
        kube_version="",
        gke_cluster_version="1.14",
        test_version="v1.14.0",
    )
    assert run_pipeline(cfg, fake.operations()).ok

    strategy, params = fake.args["cluster_up"]
    assert strategy is DeploymentStrategy.GKE
    assert params.gke_cluster_version == "1.14"
    assert params.zone == "us-central1-b"
    assert fake.args["cluster_down"][0] is DeploymentStrategy.GKE


def test_image_is_pushed_and_deleted_under_the_same_tag(make_config, fake_ops):
    fake = fake_ops()
    run_pipeline(make_config(), fake.operations())

    _, pushed_image, pushed_tag = fake.args["push_driver_image"]
    deleted_image, deleted_tag = fake.args["delete_driver_image"]
    assert (pushed_image, pushed_tag) == (deleted_image, deleted_tag)
    driver_params = fake.args["install_driver"][0]
    assert driver_params.use_staged_image
    assert driver_params.staging_version == pushed_tag


# ============================================================================
# Provisioning internals
# ============================================================================

def test_build_gate_is_preseeded_when_no_cluster_build(make_config, tmp_path):
    cfg = make_config(kube_version="", local_k8s_dir=tmp_path / "k8s")
    ctx = RunContext.create(cfg, tmp_path)
    tasks = {t.name: t for t in _provisioning_tasks(cfg, ctx, None)}

    assert not tasks[SLOT_BUILD_CLUSTER_SOURCE].needed
    assert tasks[SLOT_BUILD_CLUSTER_SOURCE].signals.ready
    assert tasks[SLOT_BRING_UP_CLUSTER].waits_on is tasks[SLOT_BUILD_CLUSTER_SOURCE].signals


@pytest.mark.parametrize(
    "overrides, needed",
    [
        ({}, {SLOT_BUILD_CLUSTER_SOURCE, SLOT_PUSH_DRIVER_IMAGE, SLOT_BRING_UP_CLUSTER}),
        ({"test_version": "v1.15.0"}, {SLOT_BUILD_CLUSTER_SOURCE, SLOT_BUILD_TEST_SOURCE,
                                       SLOT_PUSH_DRIVER_IMAGE, SLOT_BRING_UP_CLUSTER}),
        ({"do_driver_build": False, "bringup_cluster": False}, {SLOT_BUILD_CLUSTER_SOURCE}),
    ],
)
def test_only_needed_steps_get_an_operation(make_config, tmp_path, overrides, needed):
    cfg = make_config(**overrides)
    ctx = RunContext.create(cfg, tmp_path)
    tasks = _provisioning_tasks(cfg, ctx, None)
    assert {t.name for t in tasks if t.needed} == needed


def test_provision_registers_teardown_only_for_acquired_resources(make_config, fake_ops, tmp_path):
    fake = fake_ops(fail={"cluster_up": RuntimeError("no quota")})
    cfg = make_config()
    teardown = TeardownStack()

    result = provision(cfg, RunContext.create(cfg, tmp_path), fake.operations(), teardown)

    assert result.failure.task == SLOT_BRING_UP_CLUSTER
    assert len(teardown) == 1
    assert teardown.names[0].startswith("driver image ")


def test_skipped_bring_up_is_not_a_failure(make_config, fake_ops, tmp_path):
    fake = fake_ops(fail={"build_source:v1.14.0": RuntimeError("boom")})
    cfg = make_config(do_driver_build=False)
    teardown = TeardownStack()

    provision(cfg, RunContext.create(cfg, tmp_path), fake.operations(), teardown)

    assert len(teardown) == 0


def test_interrupted_provisioning_still_registers_acquired_resources(make_config, fake_ops, tmp_path):
    fake = fake_ops(fail={"build_source:v1.15.0": KeyboardInterrupt()})
    cfg = make_config(test_version="v1.15.0")
    teardown = TeardownStack()

    with pytest.raises(KeyboardInterrupt):
        provision(cfg, RunContext.create(cfg, tmp_path), fake.operations(), teardown)

    assert len(teardown) == 2
    assert teardown.names[0].startswith("driver image ")
    assert teardown.names[1] == "gce cluster"


def test_interrupted_run_tears_down_what_came_up(make_config, fake_ops):
    fake = fake_ops(fail={"build_source:v1.15.0": KeyboardInterrupt()})

    with pytest.raises(KeyboardInterrupt):
        run_pipeline(make_config(test_version="v1.15.0"), fake.operations())

    assert "install_driver" not in fake.calls
    assert fake.calls[-2:] == ["cluster_down", "delete_driver_image"]


def test_scratch_cleanup_errors_do_not_replace_the_result(make_config, fake_ops, monkeypatch):
    real_rmtree = shutil.rmtree
    leftovers = []

    def _busy_rmtree(path, *args, onexc=None, onerror=None, **kwargs):
        leftovers.append(path)
        try:
            raise OSError(errno.EBUSY, "Device or resource busy", str(path))
        except OSError as err:
            if onexc is not None:
                onexc(os.rmdir, str(path), err)
            elif onerror is not None:
                onerror(os.rmdir, str(path), sys.exc_info())
            else:
                raise

    fake = fake_ops(fail={"run_direct_tests": RuntimeError("ginkgo exited 1")})
    monkeypatch.setattr(shutil, "rmtree", _busy_rmtree)
    try:
        result = run_pipeline(make_config(), fake.operations())
    finally:
        monkeypatch.setattr(shutil, "rmtree", real_rmtree)
        for path in leftovers:
            real_rmtree(path, ignore_errors=True)

    assert leftovers
    assert result.failure.task == STAGE_RUN_TESTS


def test_relative_directories_are_resolved_once_for_every_phase(make_config, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = make_config(
        kube_version="",
        local_k8s_dir=Path("k8s"),
        pkg_dir=Path("driver"),
    )
    ctx = RunContext.create(cfg, tmp_path / "work")

    root = tmp_path.resolve()
    assert ctx.k8s_dir == root / "k8s"
    assert ctx.test_params(cfg).test_dir == root / "k8s"
    assert ctx.test_params(cfg).pkg_dir == root / "driver"
    assert ctx.driver_params(cfg).pkg_dir == root / "driver"
