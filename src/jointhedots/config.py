"""TOML configuration loading for jointhedots."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .manifest import DEFAULT_MANIFEST_FILENAME
from .models import PlacementPolicy
from .state import DEFAULT_STATE_PATH

DEFAULT_CONFIG_FILENAME = "jtd.toml"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


class ConnectionMethod(str, Enum):
    HTTPS = "https"
    SSH = "ssh"


_HOSTS: dict[str, dict[ConnectionMethod, str]] = {
    "github": {
        ConnectionMethod.SSH: "git@github.com:",
        ConnectionMethod.HTTPS: "https://github.com/",
    },
    "gitlab": {
        ConnectionMethod.SSH: "git@gitlab.com:",
        ConnectionMethod.HTTPS: "https://gitlab.com/",
    },
}


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    state_path: Path = Field(default_factory=lambda: DEFAULT_STATE_PATH.expanduser())
    manifest_name: str = DEFAULT_MANIFEST_FILENAME
    placement: PlacementPolicy = PlacementPolicy.OVERWRITE
    host: str = "github"
    method: ConnectionMethod = ConnectionMethod.HTTPS

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        values = dict(raw)
        if "state_path" in values:
            values["state_path"] = _expand_path(values["state_path"], base_dir=base_dir)
        if "host" in values:
            values["host"] = str(values["host"]).lower()
            if values["host"] not in _HOSTS:
                raise ConfigError(f"Unknown host '{raw['host']}', expected one of: {', '.join(_HOSTS)}")
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid [settings] section: {exc}") from exc


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = None
    settings: Settings = Field(default_factory=Settings)

    def repository_url(self, repository: str) -> str:
        return repository_url(repository, self.settings.host, self.settings.method)


def repository_url(repository: str, host: str = "github", method: ConnectionMethod = ConnectionMethod.HTTPS) -> str:
    """Turn ``owner/repo`` into a clone URL.

    URLs pass through unchanged; existing local paths are made absolute so the
    clone and the stored trust decision do not depend on the working directory.
    """

    if "://" in repository or repository.startswith("git@"):
        return repository
    local = Path(repository).expanduser()
    if local.exists():
        return str(local.resolve())
    try:
        prefix = _HOSTS[host.lower()][ConnectionMethod(method)]
    except KeyError:
        raise ConfigError(f"Provided host '{host}' is unknown") from None
    return f"{prefix}{repository}"


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file. Defaults to ``jtd.toml`` in the
            current working directory; when that file is absent the built-in
            defaults are used.
    """

    if path is None and not (Path.cwd() / DEFAULT_CONFIG_FILENAME).exists():
        return Config()

    config_path = _resolve_config_path(path)

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Could not parse '{config_path}': {exc}") from exc

    settings_section = data.get("settings") or {}
    if not isinstance(settings_section, Mapping):
        raise ConfigError("[settings] must be a table")

    settings = Settings.from_raw(settings_section, base_dir=config_path.parent)
    return Config(config_path=config_path, settings=settings)


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
