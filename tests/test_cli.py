from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest
from typer.testing import CliRunner

from conftest import FakeVersionControl, RecordingRunner
from jointhedots.cli import app
from jointhedots.state import InstallStateStore

runner = CliRunner()

MANIFEST = """
kitty:
  file: kitty.conf
  target: ~/.config/kitty/kitty.conf
  post_install:
    - kitty +kitten themes
zsh:
  file: zshrc
  target: ~/.zshrc
"""


@pytest.fixture
def setup(tmp_path: Path, repo: Path, fake_home: Path, monkeypatch: pytest.MonkeyPatch):
    (repo / "jtd.yaml").write_text(dedent(MANIFEST))
    state_path = tmp_path / "state.toml"
    config_path = tmp_path / "jtd.toml"
    config_path.write_text(f'[settings]\nstate_path = "{state_path}"\n')

    vcs = FakeVersionControl(repo)
    shell = RecordingRunner()
    monkeypatch.setattr("jointhedots.cli._make_vcs", lambda: vcs)
    monkeypatch.setattr("jointhedots.cli._make_runner", lambda: shell)
    return config_path, state_path, vcs, shell


def test_install_prompts_and_runs_steps(setup, fake_home: Path) -> None:
    config_path, state_path, vcs, shell = setup

    result = runner.invoke(app, ["install", "me/dotfiles", "--config", str(config_path)], input="y\n")

    assert result.exit_code == 0, result.stdout
    assert "kitty +kitten themes" in result.stdout
    assert "applied" in result.stdout
    assert vcs.checkouts == [("https://github.com/me/dotfiles", None)]
    assert shell.commands == ["kitty +kitten themes"]
    assert (fake_home / ".zshrc").read_text() == "export EDITOR=nvim\n"
    assert set(InstallStateStore.open(state_path).records) == {"kitty", "zsh"}


def test_install_declined_trust_installs_nothing(setup, fake_home: Path) -> None:
    config_path, state_path, vcs, shell = setup

    result = runner.invoke(app, ["install", "me/dotfiles", "--config", str(config_path)], input="n\n")

    assert result.exit_code == 0
    assert "not trusted" in result.stdout
    assert shell.commands == []
    assert not (fake_home / ".zshrc").exists()


def test_install_selected_units_with_trust_flag(setup, fake_home: Path) -> None:
    config_path, state_path, vcs, shell = setup

    result = runner.invoke(
        app,
        ["install", "me/dotfiles", "zsh", "--trust", "--ref", "main", "--config", str(config_path)],
    )

    assert result.exit_code == 0, result.stdout
    assert vcs.checkouts == [("https://github.com/me/dotfiles", "main")]
    assert set(InstallStateStore.open(state_path).records) == {"zsh"}


def test_install_reports_failures_with_exit_code(setup) -> None:
    config_path, state_path, vcs, shell = setup
    shell.exit_codes["kitty +kitten themes"] = 1

    result = runner.invoke(app, ["install", "me/dotfiles", "--trust", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "failed" in result.stdout


def test_install_unknown_unit_fails(setup) -> None:
    config_path, state_path, vcs, shell = setup

    result = runner.invoke(app, ["install", "me/dotfiles", "alacritty", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "not_found" in result.stdout


def test_install_with_broken_manifest(setup, repo: Path) -> None:
    config_path, *_ = setup
    (repo / "jtd.yaml").write_text("kitty:\n  file: kitty.conf\n")

    result = runner.invoke(app, ["install", "me/dotfiles", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "missing required field" in result.stdout


def test_status_and_sync_flow(setup, fake_home: Path, repo: Path) -> None:
    config_path, state_path, vcs, shell = setup
    runner.invoke(app, ["install", "me/dotfiles", "--trust", "--config", str(config_path)])

    clean = runner.invoke(app, ["status", "me/dotfiles", "--config", str(config_path)])
    assert clean.exit_code == 0
    assert "in sync" in clean.stdout

    (fake_home / ".zshrc").write_text("export EDITOR=hx\n")
    dirty = runner.invoke(app, ["status", "me/dotfiles", "--config", str(config_path)])
    assert "modified" in dirty.stdout

    synced = runner.invoke(app, ["sync", "me/dotfiles", "--config", str(config_path)])
    assert synced.exit_code == 0, synced.stdout
    assert "Successfully synced" in synced.stdout
    assert vcs.published == [("🔁 Sync zsh dotfile", [Path("zshrc")])]
    assert (repo / "zshrc").read_text() == "export EDITOR=hx\n"


def test_sync_without_squash_lists_each_commit(setup, fake_home: Path, repo: Path) -> None:
    config_path, state_path, vcs, shell = setup
    (repo / "jtd.yaml").write_text(".config:\n  squash_commits: false\n" + dedent(MANIFEST))
    runner.invoke(app, ["install", "me/dotfiles", "--trust", "--config", str(config_path)])
    (fake_home / ".zshrc").write_text("export EDITOR=hx\n")
    (fake_home / ".config" / "kitty" / "kitty.conf").write_text("font_size 14\n")

    result = runner.invoke(app, ["sync", "me/dotfiles", "--config", str(config_path)])

    assert result.exit_code == 0, result.stdout
    assert "separate commits" in result.stdout
    assert "Sync kitty dotfile" in result.stdout
    assert "Sync zsh dotfile" in result.stdout
    assert "Sync dotfiles for" not in result.stdout
    assert [message for message, _paths in vcs.published] == ["🔁 Sync kitty dotfile", "🔁 Sync zsh dotfile"]


def test_sync_without_state_asks_for_naive_sync(setup, fake_home: Path) -> None:
    config_path, state_path, vcs, shell = setup
    (fake_home / ".zshrc").write_text("local\n")

    declined = runner.invoke(app, ["sync", "me/dotfiles", "--config", str(config_path)], input="n\n")
    assert declined.exit_code == 1
    assert vcs.published == []

    naive = runner.invoke(app, ["sync", "me/dotfiles", "--naive", "--config", str(config_path)])
    assert naive.exit_code == 0, naive.stdout
    assert vcs.published == [("🔁 Sync zsh dotfile", [Path("zshrc")])]


def test_corrupt_state_warns(setup, fake_home: Path) -> None:
    config_path, state_path, vcs, shell = setup
    state_path.write_text("[units.zsh\n")

    result = runner.invoke(app, ["install", "me/dotfiles", "zsh", "--config", str(config_path)])

    assert result.exit_code == 0, result.stdout
    assert "could not be read" in " ".join(result.stdout.split())


def test_install_from_relative_repository_path(
    setup, tmp_path: Path, repo: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config_path, state_path, vcs, shell = setup
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["install", "./repo", "--config", str(config_path)], input="y\n")

    assert result.exit_code == 0, result.stdout
    assert vcs.checkouts == [(str(repo.resolve()), None)]
    assert set(InstallStateStore.open(state_path).trust_decisions) == {str(repo.resolve())}


def test_cli_handles_permission_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, fake_home: Path) -> None:
    class ExplodingVcs(FakeVersionControl):
        def checkout(self, location: str, ref: str | None = None) -> Path:
            raise PermissionError("mocked")

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("jointhedots.cli._make_vcs", lambda: ExplodingVcs(tmp_path))

    result = runner.invoke(app, ["install", "me/dotfiles"])

    assert result.exit_code == 1
    assert "Permission denied" in result.stdout


def test_init_writes_config(tmp_path: Path) -> None:
    config_path = tmp_path / "jtd.toml"

    first = runner.invoke(app, ["init", "--config", str(config_path)])
    second = runner.invoke(app, ["init", "--config", str(config_path)])

    assert first.exit_code == 0
    assert "placement" in config_path.read_text()
    assert second.exit_code == 1
    assert "already exists" in " ".join(second.stdout.split())
