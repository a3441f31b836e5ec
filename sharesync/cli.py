"""sharesync CLI — the main entry point."""

import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from sharesync import __version__
from sharesync.errors import SyncError
from sharesync.logger import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output")
@click.option("--log-file", default=None, help="Also write log records to this file")
def main(verbose: bool, log_file: str | None):
    """sharesync — copy shared directories into a target repository.

    Clones the target, replaces its shared directories with the ones from a
    source checkout, and pushes the result. The target working copy is
    snapshotted first and restored if anything fails.
    """
    setup_logging(verbose=verbose, log_file=log_file)


# ── Run ──────────────────────────────────────────────────────────────


@main.command()
@click.option("--config", "-c", "config_path", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML config file")
@click.option("--source-dir", "-s", envvar="SHARESYNC_SOURCE_DIR", default=None, help="Local checkout holding the shared directories")
@click.option("--target", "-t", envvar="SHARESYNC_TARGET", default=None, help="Target repository name")
@click.option("--token", envvar="SHARESYNC_TOKEN", default=None, help="Access token used to clone and push")
@click.option("--workspace", "-w", envvar=["SHARESYNC_WORKSPACE", "GITHUB_WORKSPACE"], default=None, help="Root for temp/ and logs/ (default: cwd)")
@click.option("--org", envvar="SHARESYNC_ORG", default=None, help="Organization owning the target")
@click.option("--host", envvar="SHARESYNC_HOST", default=None, help="Git host name")
@click.option("--repo-url", envvar="SHARESYNC_REPO_URL", default=None, help="Clone this URL instead of the host/org one")
@click.option("--subtree", "subtrees", multiple=True, help="Directory to sync (repeatable, default: shared)")
@click.option("--cleanup-snapshot/--keep-snapshot", default=None, help="Delete the snapshot after a successful run")
def run(
    config_path: str | None,
    source_dir: str | None,
    target: str | None,
    token: str | None,
    workspace: str | None,
    org: str | None,
    host: str | None,
    repo_url: str | None,
    subtrees: tuple,
    cleanup_snapshot: bool | None,
):
    """Sync the shared directories into the target repository."""
    from sharesync.config import load_config
    from sharesync.sync.transaction import SyncStatus, run_sync

    try:
        config = load_config(
            config_path,
            source_dir=source_dir,
            target=target,
            token=token,
            workspace=workspace,
            org=org,
            host=host,
            repo_url=repo_url,
            subtrees=list(subtrees) or None,
            cleanup_snapshot=cleanup_snapshot,
        )
        console.print(f"\n[bold blue]sharesync[/] — {config.source_dir} -> {config.target}\n")
        result = run_sync(config)
    except SyncError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}", soft_wrap=True)
        sys.exit(1)

    if result.changes:
        table = Table(title=f"Changes ({len(result.changes)})")
        table.add_column("Status", style="cyan", width=6)
        table.add_column("Path")
        for change in result.changes:
            table.add_row(change.kind.value, change.display_path)
        console.print(table)

    if result.status == SyncStatus.FAILED:
        console.print(Panel(escape(result.summary()), title="Sync Failed", style="red"))
        sys.exit(1)

    console.print(Panel(escape(result.summary()), title="Sync Result", style="green"))
    if result.log_path:
        console.print(f"  Run log: {result.log_path}", soft_wrap=True)


# ── Inspect ──────────────────────────────────────────────────────────


@main.command()
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
def changes(repo_path: str):
    """Show what git reports as changed in a working copy."""
    from sharesync.sync.changes import detect_changes

    try:
        found = detect_changes(repo_path)
    except SyncError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}", soft_wrap=True)
        sys.exit(1)

    if not found:
        console.print("[green]No changes.[/]")
        return

    for change in found:
        console.print(f"  [cyan]{change.kind.value}[/] {change.display_path}")


@main.command(name="ensure-scripts")
@click.argument("repo_path", type=click.Path(exists=True, file_okay=False))
@click.option("--script", "scripts", multiple=True, metavar="NAME=COMMAND", help="Required script (repeatable, default: built-in set)")
def ensure_scripts_command(repo_path: str, scripts: tuple):
    """Add missing required scripts to a package.json."""
    from sharesync.sync.manifest import DEFAULT_REQUIRED_SCRIPTS, ensure_scripts

    required = dict(DEFAULT_REQUIRED_SCRIPTS)
    if scripts:
        required = {}
        for item in scripts:
            name, sep, command = item.partition("=")
            if not sep or not name:
                raise click.BadParameter(f"Expected NAME=COMMAND, got {item!r}", param_hint="--script")
            required[name] = command

    try:
        added = ensure_scripts(repo_path, required)
    except SyncError as e:
        console.print(f"[red]Error:[/] {escape(str(e))}", soft_wrap=True)
        sys.exit(1)

    if added:
        console.print(f"[green]Added:[/] {', '.join(added)}")
    else:
        console.print("[green]All required scripts present.[/]")


# ── Cleanup ──────────────────────────────────────────────────────────


@main.command()
@click.argument("working_copy")
@click.option("--dry-run", is_flag=True, help="Only list the snapshots")
def cleanup(working_copy: str, dry_run: bool):
    """Remove snapshots left next to WORKING_COPY by successful runs."""
    from sharesync.sync.snapshot import find_orphaned_snapshots, remove_orphaned_snapshots

    if dry_run:
        found = find_orphaned_snapshots(working_copy)
    else:
        found = remove_orphaned_snapshots(working_copy)

    if not found:
        console.print("[yellow]No snapshots found.[/]")
        return

    verb = "Found" if dry_run else "Removed"
    for path in found:
        console.print(f"  {verb}: {path}", soft_wrap=True)


if __name__ == "__main__":
    main()
