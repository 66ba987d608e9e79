"""Version control boundary used by install and sync."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Protocol, Sequence

_logger = logging.getLogger(__name__)


class VersionControlError(RuntimeError):
    """Raised when a git operation fails."""


class VersionControl(Protocol):
    """Obtains a working tree and publishes commits made in it."""

    def checkout(self, location: str, ref: str | None = None) -> Path: ...

    def publish(self, message: str, paths: Sequence[Path]) -> None: ...


class GitVersionControl:
    """Drives the ``git`` executable in a temporary clone."""

    def __init__(self, git: str = "git") -> None:
        self.git = git
        self.working_tree: Path | None = None
        self._tempdir: Path | None = None

    def __enter__(self) -> "GitVersionControl":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def checkout(self, location: str, ref: str | None = None) -> Path:
        self._tempdir = Path(tempfile.mkdtemp(prefix="jtd-"))
        tree = self._tempdir / "repo"
        self._run(["clone", location, str(tree)], cwd=self._tempdir)
        if ref:
            self._run(["checkout", ref], cwd=tree)
        self.working_tree = tree
        return tree

    def publish(self, message: str, paths: Sequence[Path]) -> None:
        if self.working_tree is None:
            raise VersionControlError("No working tree has been checked out")
        tree = self.working_tree
        self._run(["add", "--", *(str(path) for path in paths)], cwd=tree)
        self._run(["commit", "-m", message], cwd=tree)
        self._run(["push"], cwd=tree)

    def close(self) -> None:
        if self._tempdir is not None:
            shutil.rmtree(self._tempdir, ignore_errors=True)
        self._tempdir = None
        self.working_tree = None

    def _run(self, args: list[str], *, cwd: Path) -> str:
        command = [self.git, *args]
        _logger.debug("Running %s in %s", " ".join(command), cwd)
        try:
            result = subprocess.run(command, cwd=cwd, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise VersionControlError(f"'{self.git}' executable not found") from exc
        if result.returncode != 0:
            raise VersionControlError(f"git {args[0]} failed:\n{result.stderr.strip()}")
        return result.stdout
