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


"""Teardown stack: releases acquired resources in reverse acquisition order."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from rich.panel import Panel

from k8s_integration import console, logger


@dataclass(frozen=True)
class TeardownEntry:
    """A cleanup action and the resource it releases."""

    name: str
    action: Callable[[], object]


class TeardownStack:
    """Ordered record of acquired resources.

    Entries are pushed only once their acquisition has succeeded. Unwinding
    pops every entry, most recently acquired first. A failing cleanup is
    logged and does not stop the remaining ones.
    """

    def __init__(self) -> None:
        self._entries: list[TeardownEntry] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def names(self) -> list[str]:
        """Registered resource names in push order."""
        return [entry.name for entry in self._entries]

    def push(self, name: str, action: Callable[[], object]) -> TeardownEntry:
        entry = TeardownEntry(name, action)
        with self._lock:
            self._entries.append(entry)
        return entry

    def _pop(self) -> TeardownEntry | None:
        with self._lock:
            return self._entries.pop() if self._entries else None

    def unwind_all(self) -> list[tuple[str, Exception]]:
        """Run every pushed cleanup in reverse push order.

        Returns:
            (resource name, error) for each cleanup that failed.
        """
        if not self._entries:
            return []

        console.print(Panel.fit("Tearing down", style="bold blue"))
        failures: list[tuple[str, Exception]] = []
        while True:
            entry = self._pop()
            if entry is None:
                break
            console.print(f"[yellow]\u2139\ufe0f  Releasing {entry.name}...[/yellow]")
            try:
                entry.action()
            except Exception as err:
                logger.warning("failed to release %s: %s", entry.name, err)
                console.print(f"[yellow]\u26a0\ufe0f  Failed to release {entry.name}: {err}[/yellow]")
                failures.append((entry.name, err))
            else:
                console.print(f"[green]\u2705 Released {entry.name}[/green]")
        return failures

    def __enter__(self) -> TeardownStack:
        return self

    def __exit__(self, *exc_info) -> None:
        self.unwind_all()
