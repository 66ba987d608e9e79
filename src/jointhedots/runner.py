"""Execution of manifest shell steps."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol


class CommandRunner(Protocol):
    """Runs a single shell step and reports its exit status."""

    def run(self, command: str, *, cwd: Path) -> int: ...


class ShellCommandRunner:
    """Hands each step verbatim to the system shell.

    Output goes straight to the user's terminal; only the exit status is kept.
    """

    def __init__(self, shell: str | None = None) -> None:
        self.shell = shell

    def run(self, command: str, *, cwd: Path) -> int:
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                executable=self.shell,
                check=False,
            )
        except OSError:
            return 127
        return completed.returncode
