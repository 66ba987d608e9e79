"""Step fingerprints used to decide whether a unit must run again."""

from __future__ import annotations

from hashlib import blake2b
from typing import Iterable

from .models import InstallUnit

DIGEST_SIZE = 32


def fingerprint(unit: InstallUnit) -> str:
    """Return a BLAKE2 digest over the unit's pre and post install steps.

    Only the steps take part; the unit name, source and target do not.
    """

    hasher = blake2b(digest_size=DIGEST_SIZE)
    _update_section(hasher, b"pre_install", unit.pre_install_steps)
    _update_section(hasher, b"post_install", unit.post_install_steps)
    return hasher.hexdigest()


def aggregate_fingerprint(units: Iterable[InstallUnit]) -> str:
    """Return one digest covering the steps of every unit that has any."""

    hasher = blake2b(digest_size=DIGEST_SIZE)
    for unit in units:
        if not unit.has_steps:
            continue
        hasher.update(fingerprint(unit).encode())
        hasher.update(b"\0")
    return hasher.hexdigest()


def _update_section(hasher, label: bytes, steps: Iterable[str]) -> None:
    steps = tuple(steps)
    hasher.update(label)
    hasher.update(len(steps).to_bytes(8, "big"))
    for step in steps:
        encoded = step.encode("utf-8")
        hasher.update(len(encoded).to_bytes(8, "big"))
        hasher.update(encoded)
