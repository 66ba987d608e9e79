"""Filesystem helpers for jointhedots."""

from __future__ import annotations

import os
import shutil
import tempfile
from hashlib import blake2b
from pathlib import Path

from .models import PlacementAction, PlacementPolicy

BACKUP_SUFFIX = ".jtd-backup"
_TEMP_PREFIX_FORMAT = ".{name}.jtd-tmp-"


class PlacementError(RuntimeError):
    """Raised when a unit's file cannot be put in place."""


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def expand_target(raw: str | os.PathLike[str]) -> Path:
    """Return an absolute target path, expanding ``~`` and env vars.

    Relative targets are taken relative to the home directory.
    """

    expanded = Path(os.path.expandvars(str(raw))).expanduser()
    if expanded.is_absolute():
        return expanded
    return Path.home() / expanded


def resolve_source(repo_root: Path, source_file: str) -> Path:
    """Return the path of ``source_file`` inside ``repo_root``."""

    root = repo_root.resolve(strict=False)
    candidate = (root / source_file).resolve(strict=False)
    try:
        candidate.relative_to(root)
    except ValueError:
        raise PlacementError(f"Source file '{source_file}' escapes the repository") from None
    if not candidate.is_file():
        raise PlacementError(f"Source file '{source_file}' does not exist in the repository")
    return candidate


def hash_file(path: Path) -> str | None:
    """Return a BLAKE2 hash of ``path`` contents, or ``None`` when it is absent."""

    if not path.is_file():
        return None
    hasher = blake2b(digest_size=32)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a temp file and ``os.replace``."""

    ensure_parent(path)
    fd, temp_name = tempfile.mkstemp(prefix=_TEMP_PREFIX_FORMAT.format(name=path.name), dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def atomic_copy(source: Path, destination: Path) -> None:
    """Copy ``source`` over ``destination`` without exposing a partial file."""

    ensure_parent(destination)
    fd, temp_name = tempfile.mkstemp(prefix=_TEMP_PREFIX_FORMAT.format(name=destination.name), dir=destination.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copyfile(source, temp_path)
        shutil.copymode(source, temp_path)
        os.replace(temp_path, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def backup_path(destination: Path) -> Path:
    """Return the first unused backup name next to ``destination``."""

    candidate = destination.parent / f"{destination.name}{BACKUP_SUFFIX}"
    counter = 1
    while candidate.exists() or candidate.is_symlink():
        counter += 1
        candidate = destination.parent / f"{destination.name}{BACKUP_SUFFIX}{counter}"
    return candidate


def place_file(source: Path, destination: Path, policy: PlacementPolicy) -> PlacementAction:
    """Put ``source`` at ``destination`` according to ``policy``.

    Placing the same bytes twice is a no-op.
    """

    if destination.is_dir() and not destination.is_symlink():
        raise PlacementError(f"Target '{destination}' is a directory")

    exists = destination.exists() or destination.is_symlink()
    if exists and not destination.is_symlink() and hash_file(destination) == hash_file(source):
        return PlacementAction.UNCHANGED

    if exists and policy is PlacementPolicy.KEEP:
        raise PlacementError(f"Target '{destination}' already exists with different content")

    action = PlacementAction.PLACED
    try:
        if exists and policy is PlacementPolicy.BACKUP:
            destination.rename(backup_path(destination))
            action = PlacementAction.BACKED_UP
        atomic_copy(source, destination)
    except OSError as exc:
        raise PlacementError(f"Unable to place '{destination}': {exc}") from exc
    return action
