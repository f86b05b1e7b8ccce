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


"""Utility functions for running external commands and checking prerequisites."""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path

import sh

from k8s_integration import console


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def command_env(extra: Mapping[str, str | os.PathLike | None]) -> dict[str, str]:
    """Build the environment for an external command.

    Entries whose value is None or empty are left out, so callers can pass
    optional settings straight through.

    Args:
        extra: Variables to set on top of the current process environment.

    Returns:
        A full environment mapping suitable for ``sh``'s ``_env``.
    """
    env = dict(os.environ)
    env.update({key: str(value) for key, value in extra.items() if value})
    return env


def _echo(line: str) -> None:
    console.print(line.rstrip("\n"), markup=False, highlight=False)


def run_command(action: str, cmd: str | Path, *args: str, **kwargs) -> None:
    """Announce and run an external command, streaming its output to the console.

    Args:
        action: Human-readable description printed before the command.
        cmd: Program name on PATH or path to an executable script.
        *args: Command arguments.
        **kwargs: Extra ``sh`` special keyword arguments (``_cwd``, ``_env``...).

    Raises:
        sh.ErrorReturnCode: If the command exits non-zero.
        sh.CommandNotFound: If the program does not exist.
    """
    console.print(f"[yellow]\u2139\ufe0f  {action}[/yellow]")
    console.print(f"   $ {cmd} {' '.join(args)}", markup=False, highlight=False)
    sh.Command(str(cmd))(*args, _out=_echo, _err=_echo, **kwargs)


@contextmanager
def process_umask(mask: int) -> Iterator[None]:
    """Set the process umask for the duration of the block and restore it after."""
    old_mask = os.umask(mask)
    try:
        yield
    finally:
        os.umask(old_mask)
