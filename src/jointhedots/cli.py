"""Command-line interface for jointhedots."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import DEFAULT_CONFIG_FILENAME, Config, ConfigError, load_config
from .filesystem import PlacementError
from .installer import Installer
from .manifest import ParseError, load_manifest
from .models import ChangedFile, ChangeKind, FailureStage, InstallReport, InstallUnit, UnitOutcome
from .runner import CommandRunner, ShellCommandRunner
from .state import InstallStateStore
from .sync import Synchronizer
from .vcs import GitVersionControl, VersionControlError

app = typer.Typer(help="Install and sync dotfiles from a manifest-driven git repository")
console = Console()


def _make_vcs() -> GitVersionControl:
    return GitVersionControl()


def _make_runner() -> CommandRunner:
    return ShellCommandRunner()


def _open_store(config: Config) -> InstallStateStore:
    store = InstallStateStore.open(config.settings.state_path)
    if store.corrupt:
        console.print(
            f"[yellow]State file '{store.path}' could not be read; treating every dotfile as not installed.[/yellow]"
        )
    return store


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges (e.g. `sudo`).")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'jtd init --config <path>' to create a configuration file.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, ParseError):
        console.print(f"[red]{exc}[/red]")
        console.print("[yellow]Check the manifest in the repository for issues.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, (VersionControlError, PlacementError)):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _announce_step(unit: InstallUnit, stage: FailureStage, index: int, command: str) -> None:
    label = "pre-install" if stage is FailureStage.PRE_INSTALL else "post-install"
    console.print(f"[cyan]{unit.name} {label} step #{index}:[/cyan] {command}")


def _confirm_trust(units: Sequence[InstallUnit]) -> bool:
    console.print(
        "[yellow]Some of the dotfiles being installed contain pre_install and/or post_install steps. "
        "Only run them if you trust this manifest.[/yellow]"
    )
    for unit in units:
        for command in (*unit.pre_install_steps, *unit.post_install_steps):
            console.print(f"  [bold]{unit.name}[/bold]: {command}")
    return typer.confirm("Run pre/post install steps?", default=False)


def _format_install_report(report: InstallReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Dotfile")
    table.add_column("Result")
    table.add_column("Details", overflow="fold")

    outcome_styles = {
        UnitOutcome.APPLIED: "green",
        UnitOutcome.SKIPPED: "blue",
        UnitOutcome.FAILED: "red",
    }

    for result in report.results:
        style = outcome_styles.get(result.outcome, "white")
        table.add_row(
            result.unit_name,
            f"[{style}]{result.outcome.value}[/{style}]",
            result.details,
        )

    console.print(table)


def _format_changes(changes: Iterable[ChangedFile]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Dotfile")
    table.add_column("Target", overflow="fold")
    table.add_column("Change")

    change_styles = {
        ChangeKind.MODIFIED: "yellow",
        ChangeKind.ADDED: "green",
        ChangeKind.DELETED: "red",
    }

    for change in changes:
        style = change_styles.get(change.change_kind, "white")
        table.add_row(change.unit_name, change.target_path, f"[{style}]{change.change_kind.value}[/{style}]")

    console.print(table)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show the git commands being run"),
) -> None:
    """Install and sync dotfiles."""

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


@app.command()
def install(
    repository: str = typer.Argument(..., help="owner/repo, clone URL or local repository path"),
    units: list[str] = typer.Argument(None, help="Dotfiles to install (defaults to every dotfile)"),
    all_units: bool = typer.Option(False, "--all", "-a", help="Install every dotfile in the manifest"),
    force: bool = typer.Option(False, "--force", help="Re-run dotfiles even if their steps are unchanged"),
    trust: bool = typer.Option(False, "--trust", help="Run pre/post install steps without asking"),
    manifest: str | None = typer.Option(None, "--manifest", "-m", help="Manifest file name in the repository"),
    ref: str | None = typer.Option(None, "--ref", help="Branch, tag or commit to install from"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to jtd.toml"),
) -> None:
    """Install dotfiles from a repository's manifest."""

    try:
        config_obj = load_config(config)
        location = config_obj.repository_url(repository)
        store = _open_store(config_obj)

        with _make_vcs() as vcs:
            tree = vcs.checkout(location, ref)
            manifest_obj = load_manifest(tree / (manifest or config_obj.settings.manifest_name))
            installer = Installer(
                store,
                _make_runner(),
                tree,
                location,
                policy=config_obj.settings.placement,
                on_step=_announce_step,
            )
            selection = "all" if all_units or not units else set(units)
            report = installer.run(manifest_obj, selection, force, confirm=_confirm_trust, trust=trust)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if report.trust_denied:
        console.print("[yellow]Manifest steps were not trusted; nothing was installed.[/yellow]")
        return

    _format_install_report(report)
    if not report.ok:
        console.print("[red]Some dotfiles failed to install. Fix the issues above and re-run to retry them.[/red]")
        raise typer.Exit(code=1)
    console.print("[green]Installation complete.[/green]")


@app.command()
def sync(
    repository: str = typer.Argument(..., help="owner/repo, clone URL or local repository path"),
    units: list[str] = typer.Argument(None, help="Dotfiles to sync (defaults to every dotfile)"),
    message: str | None = typer.Option(None, "--message", "-m", help="Commit message to use"),
    naive: bool = typer.Option(
        False,
        "--naive",
        help="Sync even when no install state exists, overwriting the remote files",
    ),
    manifest: str | None = typer.Option(None, "--manifest", help="Manifest file name in the repository"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to jtd.toml"),
) -> None:
    """Commit local dotfile changes back to the repository."""

    try:
        config_obj = load_config(config)
        location = config_obj.repository_url(repository)
        store = _open_store(config_obj)

        if not store.records and not naive:
            console.print(
                "[yellow]Could not find any state on the currently installed dotfiles. "
                "A naive sync overwrites the remote files.[/yellow]"
            )
            if not typer.confirm("Use naive sync?", default=False):
                console.print("[red]Aborting due to lack of dotfile state.[/red]")
                raise typer.Exit(code=1)

        with _make_vcs() as vcs:
            tree = vcs.checkout(location)
            manifest_obj = load_manifest(tree / (manifest or config_obj.settings.manifest_name))
            report = Synchronizer(store, vcs).sync(manifest_obj, tree, units or None, message=message)
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if report.changes:
        _format_changes(report.changes)
    if not report.published:
        console.print("[blue]No changes to sync.[/blue]")
        return
    if report.commit_message is not None:
        console.print(f"[green]Successfully synced changes:[/green] {report.commit_message}")
        return
    console.print("[green]Successfully synced changes in separate commits:[/green]")
    for line in report.commit_messages:
        console.print(f"  {line}")


@app.command()
def status(
    repository: str = typer.Argument(..., help="owner/repo, clone URL or local repository path"),
    units: list[str] = typer.Argument(None, help="Dotfiles to inspect (defaults to every dotfile)"),
    manifest: str | None = typer.Option(None, "--manifest", help="Manifest file name in the repository"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to jtd.toml"),
) -> None:
    """Show which installed dotfiles changed since they were last synced."""

    try:
        config_obj = load_config(config)
        location = config_obj.repository_url(repository)
        store = _open_store(config_obj)

        with _make_vcs() as vcs:
            tree = vcs.checkout(location)
            manifest_obj = load_manifest(tree / (manifest or config_obj.settings.manifest_name))
            changes = Synchronizer(store, vcs).status(manifest_obj, units or None)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if not changes:
        console.print("[green]All dotfiles are in sync.[/green]")
        return
    _format_changes(changes)
    console.print("[yellow]Some dotfiles changed locally. Run 'jtd sync' to push them.[/yellow]")


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter jointhedots configuration file."""

    if config.exists() and not force:
        console.print(f"[red]Configuration '{config}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text(
        """# jointhedots configuration

[settings]
state_path = "~/.local/share/jointhedots/state.toml"
manifest_name = "jtd.yaml"
# overwrite | backup | keep
placement = "overwrite"
# github | gitlab
host = "github"
# https | ssh
method = "https"
"""
    )
    console.print(f"[green]Created '{config}'.[/green]")


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
