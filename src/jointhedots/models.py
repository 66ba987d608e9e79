"""Shared models and enums for jointhedots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True, slots=True)
class InstallUnit:
    """One named file placement plus the shell steps around it."""

    name: str
    source_file: str
    target_path: str
    pre_install_steps: tuple[str, ...] = ()
    post_install_steps: tuple[str, ...] = ()

    @property
    def has_steps(self) -> bool:
        return bool(self.pre_install_steps or self.post_install_steps)


class UnitOutcome(str, Enum):
    """Outcome of applying a single unit."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class FailureStage(str, Enum):
    """Where a unit failed."""

    PRE_INSTALL = "pre_install"
    PLACEMENT = "placement"
    POST_INSTALL = "post_install"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Result emitted for every unit a run touched."""

    unit_name: str
    outcome: UnitOutcome
    reason: str | None = None
    stage: FailureStage | None = None
    exit_code: int | None = None

    @classmethod
    def applied(cls, unit_name: str) -> "ExecutionResult":
        return cls(unit_name, UnitOutcome.APPLIED)

    @classmethod
    def skipped(cls, unit_name: str, reason: str = "unchanged") -> "ExecutionResult":
        return cls(unit_name, UnitOutcome.SKIPPED, reason=reason)

    @classmethod
    def failed(
        cls,
        unit_name: str,
        stage: FailureStage,
        cause: str,
        *,
        exit_code: int | None = None,
    ) -> "ExecutionResult":
        return cls(unit_name, UnitOutcome.FAILED, reason=cause, stage=stage, exit_code=exit_code)

    @property
    def details(self) -> str:
        if self.outcome is UnitOutcome.FAILED and self.stage is not None:
            return f"{self.stage.value}: {self.reason}"
        return self.reason or ""


@dataclass(frozen=True, slots=True)
class InstallReport:
    """Aggregated results for an install run."""

    results: tuple[ExecutionResult, ...] = ()
    trust_denied: bool = False
    state_recovered: bool = False

    def _with(self, outcome: UnitOutcome) -> tuple[ExecutionResult, ...]:
        return tuple(result for result in self.results if result.outcome is outcome)

    @property
    def applied(self) -> tuple[ExecutionResult, ...]:
        return self._with(UnitOutcome.APPLIED)

    @property
    def skipped(self) -> tuple[ExecutionResult, ...]:
        return self._with(UnitOutcome.SKIPPED)

    @property
    def failed(self) -> tuple[ExecutionResult, ...]:
        return self._with(UnitOutcome.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def result_for(self, unit_name: str) -> ExecutionResult | None:
        for result in self.results:
            if result.unit_name == unit_name:
                return result
        return None


class TrustVerdict(str, Enum):
    """Decision returned by the trust gate."""

    ALLOW = "allow"
    DENY = "deny"
    PROMPT_REQUIRED = "prompt_required"


@dataclass(frozen=True, slots=True)
class TrustDecision:
    """A persisted answer to the trust prompt for one repository."""

    repository: str
    steps_digest: str
    trusted: bool
    decided_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class InstallRecord:
    """Persisted state for an applied unit."""

    unit_name: str
    fingerprint: str
    installed_at: datetime
    target_path: str | None = None
    synced_digest: str | None = None
    extra: dict[str, object] = field(default_factory=dict, compare=False)


class ChangeKind(str, Enum):
    """How a placed dotfile differs from its last synced content."""

    MODIFIED = "modified"
    DELETED = "deleted"
    ADDED = "added"


@dataclass(frozen=True, slots=True)
class ChangedFile:
    """A unit whose local file should be carried back to the repository."""

    unit_name: str
    target_path: str
    change_kind: ChangeKind


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Outcome of a sync run."""

    changes: tuple[ChangedFile, ...]
    commit_messages: tuple[str, ...] = ()
    published: bool = False

    @property
    def commit_message(self) -> str | None:
        """The message of a single squashed commit, if that is what was published."""
        return self.commit_messages[0] if len(self.commit_messages) == 1 else None


class PlacementPolicy(str, Enum):
    """What to do when a target already exists with different content."""

    OVERWRITE = "overwrite"
    BACKUP = "backup"
    KEEP = "keep"


class PlacementAction(str, Enum):
    """What placing a file actually did."""

    PLACED = "placed"
    UNCHANGED = "unchanged"
    BACKED_UP = "backed_up"
