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

"""k8s_integration - GCE PD CSI driver Kubernetes integration test runner."""

from __future__ import annotations

import io
import logging
import threading
from contextlib import contextmanager

from rich.console import Console


class TaskAwareConsole:
    """Console proxy that sends a pipeline task's output to its own buffer.

    Provisioning tasks run on worker threads. While a task holds
    :meth:`buffered`, everything it prints lands in a per-thread buffer that
    the pipeline replays as one block once the task has reported.
    """

    def __init__(self, real_console: Console) -> None:
        object.__setattr__(self, "_real", real_console)
        object.__setattr__(self, "_local", threading.local())

    def __getattr__(self, name: str):
        target = getattr(self._local, "console", self._real)
        return getattr(target, name)

    @contextmanager
    def buffered(self):
        """Buffer all console output for the current thread."""
        buf = io.StringIO()
        self._local.console = Console(file=buf, stderr=False, width=self._real.width)
        try:
            yield buf
        finally:
            del self._local.console


console = TaskAwareConsole(Console(stderr=True))
logger = logging.getLogger("k8s_integration")
