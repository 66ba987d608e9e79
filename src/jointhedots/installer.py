"""High level orchestration of install runs."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Collection, Literal, Sequence

from . import trust as trust_gate
from .executor import StepObserver, UnitExecutor
from .fingerprint import aggregate_fingerprint
from .manifest import Manifest
from .models import (
    ExecutionResult,
    FailureStage,
    InstallReport,
    InstallUnit,
    PlacementPolicy,
    TrustDecision,
    TrustVerdict,
)
from .runner import CommandRunner
from .state import InstallStateStore, utc_now

Selection = Collection[str] | Literal["all"]
TrustPrompt = Callable[[Sequence[InstallUnit]], bool]


class Installer:
    """Chooses which units to run and applies them in manifest order."""

    def __init__(
        self,
        store: InstallStateStore,
        runner: CommandRunner,
        repo_root: Path,
        repository_identity: str,
        *,
        policy: PlacementPolicy = PlacementPolicy.OVERWRITE,
        clock=utc_now,
        on_step: StepObserver | None = None,
    ) -> None:
        self.store = store
        self.repository_identity = repository_identity
        self.clock = clock
        self.executor = UnitExecutor(store, runner, repo_root, policy=policy, clock=clock, on_step=on_step)

    def run(
        self,
        manifest: Manifest,
        selected_units: Selection = "all",
        force: bool = False,
        *,
        confirm: TrustPrompt | None = None,
        trust: bool = False,
    ) -> InstallReport:
        units, missing = self._select(manifest, selected_units)
        recovered = self.store.corrupt

        if not trust and not self._trusted(units, force, confirm):
            return InstallReport(trust_denied=True, state_recovered=recovered)

        results = [self.executor.apply(unit, force=force) for unit in units]
        results.extend(
            ExecutionResult.failed(name, FailureStage.NOT_FOUND, f"Unit '{name}' was not found in the manifest")
            for name in missing
        )
        return InstallReport(results=tuple(results), state_recovered=recovered)

    def pending_units(self, units: Sequence[InstallUnit], force: bool = False) -> list[InstallUnit]:
        """Return the units that would actually execute."""

        if force:
            return list(units)
        return [unit for unit in units if self.store.needs_run(unit)]

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _select(manifest: Manifest, selected_units: Selection) -> tuple[list[InstallUnit], list[str]]:
        if selected_units == "all":
            return list(manifest), []

        names = {selected_units} if isinstance(selected_units, str) else set(selected_units)
        missing = sorted(name for name in names if name not in manifest)
        return manifest.select(names), missing

    def _trusted(self, units: Sequence[InstallUnit], force: bool, confirm: TrustPrompt | None) -> bool:
        pending = self.pending_units(units, force)
        verdict = trust_gate.evaluate(pending, self.repository_identity, self.store.trust_decisions)

        if verdict is TrustVerdict.ALLOW:
            return True
        if verdict is TrustVerdict.DENY:
            return False

        with_steps = [unit for unit in pending if unit.has_steps]
        answer = bool(confirm(with_steps)) if confirm is not None else False
        if confirm is not None:
            self.store.record_trust(
                TrustDecision(
                    repository=self.repository_identity,
                    steps_digest=aggregate_fingerprint(pending),
                    trusted=answer,
                    decided_at=self.clock(),
                )
            )
        return answer
