"""Trust gate deciding whether a manifest's shell steps may run."""

from __future__ import annotations

from typing import Iterable, Mapping

from .fingerprint import aggregate_fingerprint
from .models import InstallUnit, TrustDecision, TrustVerdict


def evaluate(
    units: Iterable[InstallUnit],
    repository_identity: str,
    decisions: Mapping[str, TrustDecision],
) -> TrustVerdict:
    """Return whether ``units`` may run their steps without asking the user.

    Units without steps never need a prompt. Otherwise a stored decision only
    applies while the combined step digest is unchanged, so an edited manifest
    is vetted again.
    """

    units = list(units)
    if not any(unit.has_steps for unit in units):
        return TrustVerdict.ALLOW

    decision = decisions.get(repository_identity)
    if decision is None or decision.steps_digest != aggregate_fingerprint(units):
        return TrustVerdict.PROMPT_REQUIRED

    return TrustVerdict.ALLOW if decision.trusted else TrustVerdict.DENY
