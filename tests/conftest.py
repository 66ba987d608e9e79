from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import pytest

from jointhedots.state import InstallStateStore

FIXED_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class RecordingRunner:
    """Stands in for the shell; remembers every command it was handed."""

    def __init__(self, exit_codes: dict[str, int] | None = None) -> None:
        self.exit_codes = exit_codes or {}
        self.commands: list[str] = []

    def run(self, command: str, *, cwd: Path) -> int:
        self.commands.append(command)
        return self.exit_codes.get(command, 0)


class FakeVersionControl:
    """Serves a prepared directory as the working tree and records publishes."""

    def __init__(self, tree: Path) -> None:
        self.tree = tree
        self.checkouts: list[tuple[str, str | None]] = []
        self.published: list[tuple[str, list[Path]]] = []

    def __enter__(self) -> "FakeVersionControl":
        return self

    def __exit__(self, *_exc: object) -> None:
        return None

    def checkout(self, location: str, ref: str | None = None) -> Path:
        self.checkouts.append((location, ref))
        return self.tree

    def publish(self, message: str, paths: Sequence[Path]) -> None:
        self.published.append((message, list(paths)))


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    (root / "kitty.conf").write_text("font_size 12\n")
    (root / "init.lua").write_text("vim.o.number = true\n")
    (root / "zshrc").write_text("export EDITOR=nvim\n")
    return root


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def store(tmp_path: Path) -> InstallStateStore:
    return InstallStateStore.open(tmp_path / "state" / "state.toml")


@pytest.fixture
def clock():
    return lambda: FIXED_TIME
