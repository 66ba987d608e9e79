"""Carrying locally edited dotfiles back to the repository."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .filesystem import PlacementError, atomic_copy, expand_target, hash_file
from .fingerprint import fingerprint
from .manifest import Manifest
from .models import ChangedFile, ChangeKind, InstallRecord, InstallUnit, SyncReport
from .state import InstallStateStore, utc_now
from .vcs import VersionControl

SINGLE_DOTFILE_COMMIT_FORMAT = "Sync {} dotfile"
MULTIPLE_DOTFILES_COMMIT_FORMAT = "Sync dotfiles for {}"


def diff(units: Iterable[InstallUnit], records: Mapping[str, InstallRecord]) -> list[ChangedFile]:
    """Return units whose placed file differs from the last synced content."""

    changes: list[ChangedFile] = []
    for unit in units:
        record = records.get(unit.name)
        synced = record.synced_digest if record else None
        current = hash_file(expand_target(unit.target_path))

        if synced is None:
            kind = ChangeKind.ADDED if current is not None else None
        elif current is None:
            kind = ChangeKind.DELETED
        elif current != synced:
            kind = ChangeKind.MODIFIED
        else:
            kind = None

        if kind is not None:
            changes.append(ChangedFile(unit.name, unit.target_path, kind))
    return changes


def commit_message(prefix: str, unit_names: Sequence[str]) -> str:
    """Build the commit message used when syncing ``unit_names``.

    >>> commit_message("", ["neovim", "kitty", "zsh"])
    'Sync dotfiles for neovim, kitty and zsh'
    """

    if len(unit_names) == 1:
        return prefix + SINGLE_DOTFILE_COMMIT_FORMAT.format(unit_names[0])

    joined = ", ".join(unit_names)
    head, sep, tail = joined.rpartition(", ")
    if sep:
        joined = f"{head} and {tail}"
    return prefix + MULTIPLE_DOTFILES_COMMIT_FORMAT.format(joined)


class Synchronizer:
    """Copies changed dotfiles into a working tree and publishes them."""

    def __init__(self, store: InstallStateStore, vcs: VersionControl, *, clock=utc_now) -> None:
        self.store = store
        self.vcs = vcs
        self.clock = clock

    def status(self, manifest: Manifest, selected_units: Iterable[str] | None = None) -> list[ChangedFile]:
        return diff(self._units(manifest, selected_units), self.store.records)

    def sync(
        self,
        manifest: Manifest,
        working_tree: Path,
        selected_units: Iterable[str] | None = None,
        *,
        message: str | None = None,
    ) -> SyncReport:
        changes = self.status(manifest, selected_units)
        carried = [change for change in changes if change.change_kind is not ChangeKind.DELETED]
        if not carried:
            return SyncReport(changes=tuple(changes))

        copied: dict[str, Path] = {}
        for unit in manifest.select(change.unit_name for change in carried):
            copied[unit.name] = self._copy_into_tree(unit, working_tree)

        names = list(copied)
        published: list[str] = []
        if manifest.settings.squash_commits or message is not None:
            final_message = message or commit_message(manifest.settings.commit_prefix, names)
            self.vcs.publish(final_message, list(copied.values()))
            published.append(final_message)
        else:
            for name, path in copied.items():
                unit_message = commit_message(manifest.settings.commit_prefix, [name])
                self.vcs.publish(unit_message, [path])
                published.append(unit_message)

        for name in names:
            self._remember(manifest.get(name))

        return SyncReport(changes=tuple(changes), commit_messages=tuple(published), published=True)

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def _units(manifest: Manifest, selected_units: Iterable[str] | None) -> list[InstallUnit]:
        if selected_units is None:
            return list(manifest)
        return manifest.select(selected_units)

    @staticmethod
    def _copy_into_tree(unit: InstallUnit, working_tree: Path) -> Path:
        root = working_tree.resolve(strict=False)
        destination = (root / unit.source_file).resolve(strict=False)
        try:
            relative = destination.relative_to(root)
        except ValueError:
            raise PlacementError(f"Source file '{unit.source_file}' escapes the repository") from None
        atomic_copy(expand_target(unit.target_path), destination)
        return relative

    def _remember(self, unit: InstallUnit | None) -> None:
        if unit is None:
            return
        digest = hash_file(expand_target(unit.target_path))
        if self.store.get(unit.name) is None:
            self.store.record(
                unit.name,
                fingerprint(unit),
                self.clock(),
                target_path=unit.target_path,
                synced_digest=digest,
            )
        else:
            self.store.mark_synced(unit.name, digest)
