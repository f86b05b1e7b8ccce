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


"""Concurrent provisioning tasks: outcomes, dependency gates, launcher, and aggregation."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from enum import Enum

from k8s_integration import console, logger


SKIP_NOT_REQUIRED = "not required for this run"
SKIP_UPSTREAM_FAILED = "upstream dependency did not succeed"


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    """The single result a task reports.

    Attributes:
        task: Name of the task (or sequential stage) that produced it.
        status: Succeeded, skipped, or failed.
        cause: Human-readable reason for a skip or failure.
        error: The exception behind a failure, if any.
        output: Console output the task produced while running.
    """

    task: str
    status: OutcomeStatus
    cause: str | None = None
    error: BaseException | None = None
    output: str = ""

    @classmethod
    def succeeded(cls, task: str) -> Outcome:
        return cls(task, OutcomeStatus.SUCCEEDED)

    @classmethod
    def skipped(cls, task: str, cause: str) -> Outcome:
        return cls(task, OutcomeStatus.SKIPPED, cause=cause)

    @classmethod
    def failed(cls, task: str, error: BaseException) -> Outcome:
        return cls(task, OutcomeStatus.FAILED, cause=str(error) or type(error).__name__, error=error)

    @property
    def ok(self) -> bool:
        """Whether this outcome lets the pipeline continue."""
        return self.status is not OutcomeStatus.FAILED

    def describe(self) -> str:
        if self.status is OutcomeStatus.SUCCEEDED:
            return f"{self.task}: succeeded"
        return f"{self.task}: {self.status.value}: {self.cause}"


@dataclass(frozen=True)
class PipelineResult:
    """Terminal value of a run: success, or the first failure that stopped it."""

    failure: Outcome | None = None

    @classmethod
    def success(cls) -> PipelineResult:
        return cls()

    @classmethod
    def failed(cls, outcome: Outcome) -> PipelineResult:
        return cls(failure=outcome)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def message(self) -> str:
        if self.failure is None:
            return "Integration run succeeded"
        return f"Step '{self.failure.task}' failed: {self.failure.cause}"


# ============================================================================
# Dependency gate
# ============================================================================

class DependencyGate:
    """One-shot signal telling a downstream task whether its upstream succeeded.

    Args:
        proceed: Pre-seed the gate when the upstream task is not part of the run.
            Leave as None to have the upstream task write it.
    """

    def __init__(self, proceed: bool | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._proceed = False
        if proceed is not None:
            self.write(proceed)

    @property
    def ready(self) -> bool:
        """Whether :meth:`read` would return without waiting."""
        return self._event.is_set()

    def write(self, proceed: bool) -> None:
        """Publish the upstream result.

        Raises:
            RuntimeError: If the gate was already written.
        """
        with self._lock:
            if self._event.is_set():
                raise RuntimeError("dependency gate written twice")
            self._proceed = proceed
            self._event.set()

    def read(self) -> bool:
        """Block until the upstream result is published and return it."""
        self._event.wait()
        return self._proceed


# ============================================================================
# Tasks and launcher
# ============================================================================

@dataclass(frozen=True)
class Task:
    """A named provisioning step.

    Attributes:
        name: Slot name the task reports under.
        operation: The external work, or None when the run does not need this step.
        waits_on: Gate read before doing any work; a False read skips the task.
        signals: Gate this task writes with its own success just before reporting.
    """

    name: str
    operation: Callable[[], object] | None = None
    waits_on: DependencyGate | None = None
    signals: DependencyGate | None = None

    @property
    def needed(self) -> bool:
        return self.operation is not None


def _execute(task: Task) -> Outcome:
    """Run a task on the current thread and turn its result into an Outcome."""
    if not task.needed:
        return Outcome.skipped(task.name, SKIP_NOT_REQUIRED)

    proceed = False
    try:
        with console.buffered() as buf:
            if task.waits_on is not None and not task.waits_on.read():
                outcome = Outcome.skipped(task.name, SKIP_UPSTREAM_FAILED)
            else:
                try:
                    task.operation()
                except Exception as err:
                    logger.debug("task %s failed", task.name, exc_info=True)
                    outcome = Outcome.failed(task.name, err)
                else:
                    outcome = Outcome.succeeded(task.name)
        proceed = outcome.status is OutcomeStatus.SUCCEEDED
        return replace(outcome, output=buf.getvalue())
    finally:
        if task.signals is not None:
            task.signals.write(proceed)


class TaskLauncher:
    """Starts tasks on a fixed-size thread pool; use as a context manager.

    Args:
        max_workers: Pool size; must cover every task that can block on a gate.
    """

    def __init__(self, max_workers: int) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="k8s-integration")

    def launch(self, task: Task) -> Future[Outcome]:
        """Start a task without blocking and return the future of its Outcome.

        Raises:
            ValueError: If a skipped task owns a gate nobody would ever write.
        """
        if not task.needed and task.signals is not None and not task.signals.ready:
            raise ValueError(f"task '{task.name}' is not needed but its dependency gate was not pre-seeded")
        return self._executor.submit(_execute, task)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> TaskLauncher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()


# ============================================================================
# Outcome aggregation
# ============================================================================

class OutcomeAggregator:
    """Barrier over a fixed, ordered set of task slots.

    Every declared slot must report exactly once. The aggregate failure is the
    first failed outcome in slot order, independent of completion order.
    """

    def __init__(self, slots: Iterable[str]) -> None:
        self._slots = tuple(slots)
        if len(set(self._slots)) != len(self._slots):
            raise ValueError(f"duplicate task slots: {self._slots}")
        self._futures: dict[Future[Outcome], str] = {}
        self._outcomes: dict[str, Outcome] = {}

    def _check_slot(self, name: str) -> None:
        if name not in self._slots:
            raise KeyError(f"unknown task slot '{name}'")
        if name in self._outcomes or name in self._futures.values():
            raise ValueError(f"task slot '{name}' reported twice")

    def track(self, name: str, future: Future[Outcome]) -> None:
        """Bind a launched task's future to its slot."""
        self._check_slot(name)
        self._futures[future] = name

    def record(self, outcome: Outcome) -> None:
        """Accept an outcome for its slot directly."""
        self._check_slot(outcome.task)
        self._outcomes[outcome.task] = outcome

    def wait(self) -> PipelineResult:
        """Block until every slot has reported, then classify.

        Raises:
            RuntimeError: If some declared slots were never tracked or recorded.
        """
        missing = set(self._slots) - set(self._outcomes) - set(self._futures.values())
        if missing:
            raise RuntimeError(f"task slots never launched: {sorted(missing)}")

        for future in as_completed(list(self._futures)):
            self._settle(future)
        return self.result()

    def _settle(self, future: Future[Outcome]) -> None:
        name = self._futures.pop(future)
        outcome = future.result()
        if outcome.task != name:
            outcome = replace(outcome, task=name)
        self._outcomes[name] = outcome

    def collect_done(self) -> None:
        """Take in every tracked task that has already reported, without blocking.

        Tasks that were cancelled or died with a non-Exception error are left
        without an outcome.
        """
        for future in list(self._futures):
            if future.done() and not future.cancelled() and future.exception() is None:
                self._settle(future)

    def outcomes(self) -> list[Outcome]:
        """Outcomes received so far, in slot order."""
        return [self._outcomes[name] for name in self._slots if name in self._outcomes]

    def result(self) -> PipelineResult:
        for outcome in self.outcomes():
            if not outcome.ok:
                return PipelineResult.failed(outcome)
        return PipelineResult.success()
