"""Manifest parsing for jointhedots."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .models import InstallUnit

DEFAULT_MANIFEST_FILENAME = "jtd.yaml"
SETTINGS_KEY = ".config"


class ParseError(RuntimeError):
    """Raised when a manifest cannot be turned into install units."""


class ManifestSettings(BaseModel):
    """Manifest-level options stored under the ``.config`` key."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    commit_prefix: str = "🔁 "
    squash_commits: bool = True


class Manifest:
    """Ordered, read-only collection of install units."""

    def __init__(self, units: Iterable[InstallUnit], settings: ManifestSettings | None = None) -> None:
        self._units: dict[str, InstallUnit] = {}
        for unit in units:
            if unit.name in self._units:
                raise ParseError(f"Unit '{unit.name}' is defined more than once")
            self._units[unit.name] = unit
        self.settings = settings or ManifestSettings()

    def __iter__(self) -> Iterator[InstallUnit]:
        return iter(self._units.values())

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, name: object) -> bool:
        return name in self._units

    def names(self) -> list[str]:
        return list(self._units)

    def get(self, name: str) -> InstallUnit | None:
        return self._units.get(name)

    def select(self, names: Iterable[str]) -> list[InstallUnit]:
        """Return the named units in manifest order, ignoring unknown names."""

        wanted = set(names)
        return [unit for unit in self._units.values() if unit.name in wanted]

    @property
    def has_steps(self) -> bool:
        return any(unit.has_steps for unit in self._units.values())


def parse_manifest(raw: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> Manifest:
    """Build a ``Manifest`` from already-parsed structured input.

    ``raw`` is either a mapping of unit name to unit body or a sequence of
    ``(name, body)`` pairs, which lets callers surface duplicate names that a
    plain mapping would have collapsed.
    """

    if isinstance(raw, Mapping):
        pairs = list(raw.items())
    else:
        try:
            pairs = [(name, body) for name, body in raw]
        except (TypeError, ValueError) as exc:
            raise ParseError("Manifest must be a mapping of unit names to unit definitions") from exc

    settings = ManifestSettings()
    units: list[InstallUnit] = []
    seen: set[str] = set()

    for name, body in pairs:
        if name == SETTINGS_KEY:
            settings = _parse_settings(body)
            continue
        if not isinstance(name, str) or not name.strip():
            raise ParseError(f"Unit name {name!r} must be a non-empty string")
        if name in seen:
            raise ParseError(f"Unit '{name}' is defined more than once")
        seen.add(name)
        units.append(_parse_unit(name, body))

    return Manifest(units, settings)


def load_manifest(path: Path) -> Manifest:
    """Read a YAML manifest from ``path``."""

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.load(handle, Loader=_UniqueKeyLoader)
    except FileNotFoundError:
        raise ParseError(f"Could not find manifest '{path.name}' in repository") from None
    except yaml.YAMLError as exc:
        raise ParseError(f"Could not parse manifest: {exc}") from exc

    if data is None:
        return Manifest(())
    return parse_manifest(data)


def _parse_unit(name: str, body: Any) -> InstallUnit:
    if not isinstance(body, Mapping):
        raise ParseError(f"Unit '{name}' must be a mapping")

    source = _required_string(name, body, "file")
    target = _required_string(name, body, "target")

    return InstallUnit(
        name=name,
        source_file=source,
        target_path=target,
        pre_install_steps=_parse_steps(name, body, "pre_install"),
        post_install_steps=_parse_steps(name, body, "post_install"),
    )


def _required_string(name: str, body: Mapping[str, Any], key: str) -> str:
    if key not in body:
        raise ParseError(f"Unit '{name}' is missing required field '{key}'")
    value = body[key]
    if not isinstance(value, str):
        raise ParseError(f"Unit '{name}' field '{key}' must be a string")
    if not value.strip():
        raise ParseError(f"Unit '{name}' field '{key}' must not be empty")
    return value


def _parse_steps(name: str, body: Mapping[str, Any], key: str) -> tuple[str, ...]:
    steps = body.get(key)
    if steps is None:
        return ()
    if isinstance(steps, str) or not isinstance(steps, list):
        raise ParseError(f"Unit '{name}' field '{key}' must be a list of commands")
    for step in steps:
        if not isinstance(step, str):
            raise ParseError(f"Unit '{name}' field '{key}' must only contain strings, got {step!r}")
    return tuple(steps)


def _parse_settings(body: Any) -> ManifestSettings:
    if body is None:
        return ManifestSettings()
    if not isinstance(body, Mapping):
        raise ParseError(f"'{SETTINGS_KEY}' must be a mapping")
    try:
        return ManifestSettings.model_validate(dict(body))
    except ValidationError as exc:
        raise ParseError(f"Invalid '{SETTINGS_KEY}' section: {exc}") from exc


class _UniqueKeyLoader(yaml.SafeLoader):
    """Safe loader that refuses duplicate mapping keys."""

    def construct_mapping(self, node, deep=False):  # noqa: ANN001
        seen: set[Any] = set()
        for key_node, _value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            line = key_node.start_mark.line + 1
            try:
                duplicate = key in seen
            except TypeError:
                raise ParseError(f"Unsupported mapping key on line {line}") from None
            if duplicate:
                raise ParseError(f"Key '{key}' is defined more than once (line {line})")
            seen.add(key)
        return super().construct_mapping(node, deep=deep)
