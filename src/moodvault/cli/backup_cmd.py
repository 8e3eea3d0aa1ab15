"""CLI commands for backups: mv backup now/list/restore/status/delete/prune/..."""

from __future__ import annotations

import json
from pathlib import Path

import click

from moodvault.core.errors import BackupError
from moodvault.core.retention import RetentionManager
from moodvault.engine import Engine, open_engine
from moodvault.providers.backup.base import format_size

_home_option = click.option(
    "--home",
    type=click.Path(path_type=Path),
    default=None,
    help="Override MV_HOME path.",
)
_backend_option = click.option(
    "--backend",
    type=click.Choice(["drive", "cloud"]),
    default=None,
    help="Use this backend instead of the platform default.",
)


def _engine(home: Path | None, backend: str | None = None) -> Engine:
    try:
        return open_engine(home, backend)
    except KeyError as e:
        raise click.ClickException(str(e)) from e


@click.group("backup")
def backup_group() -> None:
    """Back up and restore tracked moods."""


@backup_group.command("now")
@_home_option
@_backend_option
def backup_now(home: Path | None, backend: str | None) -> None:
    """Run a backup now, regardless of schedule."""
    engine = _engine(home, backend)
    click.echo(f"Backing up to {engine.backend.info.display_name}...")
    result = engine.scheduler.perform_backup(manual=True)
    if not result.success:
        raise click.ClickException(result.error or "Backup failed")
    click.echo(f"  OK: {result.message}")


@backup_group.command("list")
@_home_option
@_backend_option
def backup_list(home: Path | None, backend: str | None) -> None:
    """List remote backups, newest first."""
    engine = _engine(home, backend)
    try:
        blobs = engine.backend.list()
    except BackupError as e:
        raise click.ClickException(str(e)) from e

    if not blobs:
        click.echo("No backups found.")
        return
    for blob in blobs:
        when = blob.created_at.strftime("%Y-%m-%d %H:%M") if blob.created_at else "?"
        click.echo(f"  {blob.id}  {when}  ({format_size(blob.size)})")


@backup_group.command("restore")
@_home_option
@_backend_option
@click.option("--blob", "blob_id", default=None, help="Specific backup ID (default: latest).")
@click.option("--from-mirror", is_flag=True, help="Restore from the copy mirrored in the local store.")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def backup_restore(
    home: Path | None, backend: str | None, blob_id: str | None, from_mirror: bool, yes: bool,
) -> None:
    """Merge a backup into the local store. Existing moods and goals are kept."""
    engine = _engine(home, backend)
    source = "the local mirror" if from_mirror else (blob_id or "the latest backup")
    if not yes:
        click.confirm(f"Restore from {source}?", abort=True)

    restorer = engine.restorer()
    if from_mirror:
        result = restorer.restore_from_mirror()
    elif blob_id:
        result = restorer.restore(blob_id)
    else:
        result = restorer.restore_latest()

    if not result.success:
        raise click.ClickException(result.error or "Restore failed")
    click.echo(result.message)


@backup_group.command("status")
@_home_option
@_backend_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def backup_status(home: Path | None, backend: str | None, as_json: bool) -> None:
    """Show backup settings, last backup and backend state."""
    engine = _engine(home, backend)
    info = engine.scheduler.status()
    info["backend_status"] = engine.backend.status()

    if as_json:
        click.echo(json.dumps(info, indent=2, default=str))
        return

    backend_status = info["backend_status"]
    click.echo(f"Backend:      {backend_status.get('type')} "
               f"({'available' if info['backend_available'] else 'unavailable'})")
    if "signed_in" in backend_status:
        account = backend_status.get("user") or ("signed in" if backend_status["signed_in"] else "not signed in")
        click.echo(f"Account:      {account}")
    click.echo(f"Auto backup:  {'on' if info['auto_backup_enabled'] else 'off'}, "
               f"every {info['interval_hours']}h, keep {info['keep']}")
    click.echo(f"Last backup:  {info['last_successful_backup_at'] or 'never'}")
    if info["next_due_at"]:
        click.echo(f"Next due:     {info['next_due_at']}")

    lines = engine.scheduler.get_log_lines(5)
    if lines:
        click.echo("\nRecent:")
        for line in lines:
            click.echo(f"  {line}")


@backup_group.command("delete")
@_home_option
@_backend_option
@click.argument("blob_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def backup_delete(home: Path | None, backend: str | None, blob_id: str, yes: bool) -> None:
    """Delete one remote backup."""
    engine = _engine(home, backend)
    if not yes:
        click.confirm(f"Delete backup {blob_id}?", abort=True)
    if not engine.backend.delete(blob_id):
        raise click.ClickException(f"Could not delete {blob_id}")
    click.echo(f"Deleted {blob_id}")


@backup_group.command("prune")
@_home_option
@_backend_option
@click.option("--keep", type=int, default=None, help="Backups to keep (default: backup.keep).")
@click.option("--dry-run", is_flag=True, help="Only show what would be deleted.")
def backup_prune(home: Path | None, backend: str | None, keep: int | None, dry_run: bool) -> None:
    """Delete all but the newest backups."""
    engine = _engine(home, backend)
    keep = keep if keep is not None else int(engine.config["backup"]["keep"])
    manager = RetentionManager(engine.backend)
    try:
        if dry_run:
            _kept, doomed = manager.plan(keep)
            for blob in doomed:
                click.echo(f"  would delete {blob.name}")
            click.echo(f"{len(doomed)} backup(s) would be deleted.")
            return
        result = manager.prune(keep)
    except (BackupError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Kept {len(result.kept)}, deleted {len(result.deleted)}.")
    for err in result.errors:
        click.echo(f"  {err}")


@backup_group.command("auth")
@_home_option
def backup_auth(home: Path | None) -> None:
    """Sign in to Google Drive (opens a browser)."""
    engine = _engine(home, "drive")
    if not engine.backend.sign_in(interactive=True):
        raise click.ClickException(
            "Google Drive sign-in failed. Check drive.client_secrets in config.yaml."
        )
    click.echo("Signed in to Google Drive.")


@backup_group.command("signout")
@_home_option
def backup_signout(home: Path | None) -> None:
    """Forget the stored Google Drive token."""
    engine = _engine(home, "drive")
    engine.backend.sign_out()
    click.echo("Signed out of Google Drive.")


@backup_group.command("enable")
@_home_option
def backup_enable(home: Path | None) -> None:
    """Turn automatic backups on."""
    engine = _engine(home)
    # The running daemon evaluates on its next tick.
    engine.scheduler.set_auto_backup_enabled(True, evaluate=False)
    click.echo("Automatic backup enabled.")


@backup_group.command("disable")
@_home_option
def backup_disable(home: Path | None) -> None:
    """Turn automatic backups off."""
    engine = _engine(home)
    engine.scheduler.set_auto_backup_enabled(False)
    click.echo("Automatic backup disabled.")


@backup_group.command("interval")
@_home_option
@click.argument("hours", type=click.IntRange(min=1))
def backup_interval(home: Path | None, hours: int) -> None:
    """Set the automatic backup interval in hours."""
    engine = _engine(home)
    engine.scheduler.set_interval_hours(hours)
    click.echo(f"Backup interval set to {hours}h.")
