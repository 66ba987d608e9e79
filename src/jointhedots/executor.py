"""Application of a single install unit."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

from .filesystem import PlacementError, expand_target, hash_file, place_file, resolve_source
from .fingerprint import fingerprint
from .models import ExecutionResult, FailureStage, InstallUnit, PlacementPolicy
from .runner import CommandRunner
from .state import InstallStateStore, utc_now

StepObserver = Callable[[InstallUnit, FailureStage, int, str], None]


class UnitExecutor:
    """Runs pre steps, places the file, runs post steps, then records state.

    Any failing stage stops the unit. The fingerprint is only recorded once
    every stage succeeded, so a retry repeats the whole unit.
    """

    def __init__(
        self,
        store: InstallStateStore,
        runner: CommandRunner,
        repo_root: Path,
        *,
        policy: PlacementPolicy = PlacementPolicy.OVERWRITE,
        clock=utc_now,
        on_step: StepObserver | None = None,
    ) -> None:
        self.store = store
        self.runner = runner
        self.repo_root = repo_root
        self.policy = policy
        self.clock = clock
        self.on_step = on_step

    def apply(self, unit: InstallUnit, force: bool = False) -> ExecutionResult:
        if not force and not self.store.needs_run(unit):
            return ExecutionResult.skipped(unit.name)

        try:
            source = resolve_source(self.repo_root, unit.source_file)
        except PlacementError as exc:
            return ExecutionResult.failed(unit.name, FailureStage.PLACEMENT, str(exc))

        if not force and self._has_unsynced_changes(unit):
            return ExecutionResult.failed(
                unit.name,
                FailureStage.PLACEMENT,
                "local changes since last sync; run 'jtd sync' or use --force",
            )

        failure = self._run_steps(unit, FailureStage.PRE_INSTALL, unit.pre_install_steps)
        if failure is not None:
            return failure

        target = expand_target(unit.target_path)
        policy = PlacementPolicy.OVERWRITE if force and self.policy is PlacementPolicy.KEEP else self.policy
        try:
            place_file(source, target, policy)
        except PlacementError as exc:
            return ExecutionResult.failed(unit.name, FailureStage.PLACEMENT, str(exc))

        failure = self._run_steps(unit, FailureStage.POST_INSTALL, unit.post_install_steps)
        if failure is not None:
            return failure

        self.store.record(
            unit.name,
            fingerprint(unit),
            self.clock(),
            target_path=unit.target_path,
            synced_digest=hash_file(target),
        )
        return ExecutionResult.applied(unit.name)

    def _has_unsynced_changes(self, unit: InstallUnit) -> bool:
        record = self.store.get(unit.name)
        if record is None or record.synced_digest is None or record.target_path != unit.target_path:
            return False
        current = hash_file(expand_target(unit.target_path))
        return current is not None and current != record.synced_digest

    def _run_steps(
        self,
        unit: InstallUnit,
        stage: FailureStage,
        steps: Sequence[str],
    ) -> ExecutionResult | None:
        for index, command in enumerate(steps):
            if self.on_step is not None:
                self.on_step(unit, stage, index, command)
            exit_code = self.runner.run(command, cwd=self.repo_root)
            if exit_code != 0:
                return ExecutionResult.failed(
                    unit.name,
                    stage,
                    f"step #{index} '{command}' exited with status {exit_code}",
                    exit_code=exit_code,
                )
        return None
