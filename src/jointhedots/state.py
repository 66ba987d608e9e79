"""Persistent install and trust state for jointhedots."""

from __future__ import annotations

import tomllib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import tomli_w

from .filesystem import atomic_write_bytes
from .fingerprint import fingerprint
from .models import InstallRecord, InstallUnit, TrustDecision

DEFAULT_STATE_PATH = Path("~/.local/share/jointhedots/state.toml")
STATE_HEADER = "# jointhedots installation state. Automatically generated, DO NOT EDIT (unless you know what you're doing)\n"

_RECORD_FIELDS = {"fingerprint", "installed_at", "target", "synced_digest"}
_TRUST_FIELDS = {"steps_digest", "trusted", "decided_at"}


class StateCorrupt(ValueError):
    """Raised internally when the state file cannot be understood."""


class InstallStateStore:
    """Tracks which units were applied and which repositories are trusted.

    The on-disk file is rewritten in full after every change. A file that
    cannot be parsed is treated as empty and flagged through ``corrupt``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.corrupt = False
        self._records: dict[str, InstallRecord] = {}
        self._trust: dict[str, TrustDecision] = {}
        self._trust_extra: dict[str, dict[str, Any]] = {}
        self._extra: dict[str, Any] = {}

    @classmethod
    def open(cls, path: Path) -> "InstallStateStore":
        store = cls(path)
        store.load()
        return store

    def load(self) -> dict[str, InstallRecord]:
        self.corrupt = False
        self._records, self._trust, self._trust_extra, self._extra = {}, {}, {}, {}

        if not self.path.exists():
            return {}

        try:
            with self.path.open("rb") as handle:
                data = tomllib.load(handle)
            self._read_payload(data)
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError, StateCorrupt):
            self.corrupt = True
            self._records, self._trust, self._trust_extra, self._extra = {}, {}, {}, {}

        return dict(self._records)

    def save(self) -> None:
        payload: dict[str, Any] = dict(self._extra)
        payload["units"] = {name: self._record_to_dict(record) for name, record in self._records.items()}
        payload["trust"] = {
            repository: {**self._trust_extra.get(repository, {}), **self._trust_to_dict(decision)}
            for repository, decision in self._trust.items()
        }
        atomic_write_bytes(self.path, (STATE_HEADER + tomli_w.dumps(payload)).encode("utf-8"))

    @property
    def records(self) -> dict[str, InstallRecord]:
        return dict(self._records)

    def get(self, unit_name: str) -> InstallRecord | None:
        return self._records.get(unit_name)

    def needs_run(self, unit: InstallUnit) -> bool:
        record = self._records.get(unit.name)
        if record is None:
            return True
        if record.fingerprint != fingerprint(unit):
            return True
        return record.target_path is not None and record.target_path != unit.target_path

    def record(
        self,
        unit_name: str,
        fingerprint: str,
        timestamp: datetime,
        *,
        target_path: str | None = None,
        synced_digest: str | None = None,
    ) -> InstallRecord:
        previous = self._records.get(unit_name)
        record = InstallRecord(
            unit_name=unit_name,
            fingerprint=fingerprint,
            installed_at=timestamp,
            target_path=target_path,
            synced_digest=synced_digest,
            extra=dict(previous.extra) if previous else {},
        )
        self._records[unit_name] = record
        self.save()
        return record

    def mark_synced(self, unit_name: str, digest: str | None) -> None:
        record = self._records.get(unit_name)
        if record is None:
            return
        self._records[unit_name] = InstallRecord(
            unit_name=record.unit_name,
            fingerprint=record.fingerprint,
            installed_at=record.installed_at,
            target_path=record.target_path,
            synced_digest=digest,
            extra=record.extra,
        )
        self.save()

    def forget(self, unit_name: str) -> None:
        if self._records.pop(unit_name, None) is not None:
            self.save()

    def trust_decision(self, repository: str) -> TrustDecision | None:
        return self._trust.get(repository)

    @property
    def trust_decisions(self) -> dict[str, TrustDecision]:
        return dict(self._trust)

    def record_trust(self, decision: TrustDecision) -> None:
        self._trust[decision.repository] = decision
        self.save()

    # ------------------------------------------------------------------
    # Serialisation helpers

    def _read_payload(self, data: Mapping[str, Any]) -> None:
        units = data.get("units", {})
        trust = data.get("trust", {})
        if not isinstance(units, Mapping) or not isinstance(trust, Mapping):
            raise StateCorrupt("'units' and 'trust' must be tables")

        for name, body in units.items():
            self._records[name] = self._record_from_dict(name, body)
        for repository, body in trust.items():
            self._trust[repository] = self._trust_from_dict(repository, body)
            self._trust_extra[repository] = {k: v for k, v in body.items() if k not in _TRUST_FIELDS}

        self._extra = {key: value for key, value in data.items() if key not in ("units", "trust")}

    @staticmethod
    def _record_from_dict(name: str, body: Any) -> InstallRecord:
        if not isinstance(body, Mapping):
            raise StateCorrupt(f"Entry for '{name}' must be a table")
        digest = body.get("fingerprint")
        if not isinstance(digest, str):
            raise StateCorrupt(f"Entry for '{name}' has no fingerprint")
        target = body.get("target")
        synced = body.get("synced_digest")
        if target is not None and not isinstance(target, str):
            raise StateCorrupt(f"Entry for '{name}' has an invalid target")
        if synced is not None and not isinstance(synced, str):
            raise StateCorrupt(f"Entry for '{name}' has an invalid synced digest")
        return InstallRecord(
            unit_name=name,
            fingerprint=digest,
            installed_at=_parse_timestamp(body.get("installed_at"), name),
            target_path=target,
            synced_digest=synced,
            extra={key: value for key, value in body.items() if key not in _RECORD_FIELDS},
        )

    @staticmethod
    def _trust_from_dict(repository: str, body: Any) -> TrustDecision:
        if not isinstance(body, Mapping):
            raise StateCorrupt(f"Trust entry for '{repository}' must be a table")
        digest = body.get("steps_digest")
        trusted = body.get("trusted")
        if not isinstance(digest, str) or not isinstance(trusted, bool):
            raise StateCorrupt(f"Trust entry for '{repository}' is incomplete")
        decided_at = body.get("decided_at")
        return TrustDecision(
            repository=repository,
            steps_digest=digest,
            trusted=trusted,
            decided_at=_parse_timestamp(decided_at, repository) if decided_at is not None else None,
        )

    @staticmethod
    def _record_to_dict(record: InstallRecord) -> dict[str, object]:
        payload: dict[str, object] = dict(record.extra)
        payload["fingerprint"] = record.fingerprint
        payload["installed_at"] = record.installed_at
        if record.target_path is not None:
            payload["target"] = record.target_path
        if record.synced_digest is not None:
            payload["synced_digest"] = record.synced_digest
        return payload

    @staticmethod
    def _trust_to_dict(decision: TrustDecision) -> dict[str, object]:
        payload: dict[str, object] = {
            "steps_digest": decision.steps_digest,
            "trusted": decision.trusted,
        }
        if decision.decided_at is not None:
            payload["decided_at"] = decision.decided_at
        return payload


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _parse_timestamp(value: Any, owner: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise StateCorrupt(f"Entry for '{owner}' has an invalid timestamp")
