"""Core package for the jointhedots project."""

from .cli import app, run
from .config import Config, ConfigError, Settings, load_config
from .executor import UnitExecutor
from .fingerprint import aggregate_fingerprint, fingerprint
from .installer import Installer
from .manifest import Manifest, ManifestSettings, ParseError, load_manifest, parse_manifest
from .models import (
    ChangedFile,
    ChangeKind,
    ExecutionResult,
    FailureStage,
    InstallRecord,
    InstallReport,
    InstallUnit,
    PlacementPolicy,
    TrustDecision,
    TrustVerdict,
    UnitOutcome,
)
from .runner import CommandRunner, ShellCommandRunner
from .state import InstallStateStore
from .sync import Synchronizer, commit_message, diff
from .trust import evaluate
from .vcs import GitVersionControl, VersionControl, VersionControlError

__all__ = [
    "Config",
    "ConfigError",
    "Settings",
    "load_config",
    "UnitExecutor",
    "aggregate_fingerprint",
    "fingerprint",
    "Installer",
    "Manifest",
    "ManifestSettings",
    "ParseError",
    "load_manifest",
    "parse_manifest",
    "ChangedFile",
    "ChangeKind",
    "ExecutionResult",
    "FailureStage",
    "InstallRecord",
    "InstallReport",
    "InstallUnit",
    "PlacementPolicy",
    "TrustDecision",
    "TrustVerdict",
    "UnitOutcome",
    "CommandRunner",
    "ShellCommandRunner",
    "InstallStateStore",
    "Synchronizer",
    "commit_message",
    "diff",
    "evaluate",
    "GitVersionControl",
    "VersionControl",
    "VersionControlError",
    "app",
    "run",
]
