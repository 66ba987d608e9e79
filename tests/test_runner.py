from __future__ import annotations

from pathlib import Path

from jointhedots.runner import ShellCommandRunner


def test_shell_runner_reports_exit_status(tmp_path: Path) -> None:
    runner = ShellCommandRunner()

    assert runner.run("true", cwd=tmp_path) == 0
    assert runner.run("exit 3", cwd=tmp_path) == 3


def test_shell_runner_passes_command_verbatim(tmp_path: Path) -> None:
    runner = ShellCommandRunner()

    assert runner.run('echo "a b" > out.txt && test -f out.txt', cwd=tmp_path) == 0
    assert (tmp_path / "out.txt").read_text() == "a b\n"


def test_missing_shell_is_a_failure(tmp_path: Path) -> None:
    runner = ShellCommandRunner(shell=str(tmp_path / "no-such-shell"))

    assert runner.run("true", cwd=tmp_path) == 127
