"""CLI commands for snapshot files: mv export, mv import."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

import click

from moodvault.core.config import load_config, resolve_home, store_path
from moodvault.core.errors import FormatError
from moodvault.core.fileutil import atomic_write
from moodvault.core.models import ExportFilters
from moodvault.core.store import JsonFileStore
from moodvault.snapshot.builder import SnapshotBuilder
from moodvault.snapshot.codec import decode, encode
from moodvault.snapshot.importer import MergeImporter


def _open_store(home: Path | None) -> tuple[JsonFileStore, dict]:
    home_path = home or resolve_home()
    config = load_config(home_path / ".mv" / "config.yaml")
    config["home"] = str(home_path)
    return JsonFileStore(store_path(config)), config


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


@click.command("export")
@click.option(
    "--home",
    type=click.Path(path_type=Path),
    default=None,
    help="Override MV_HOME path.",
)
@click.option(
    "--output", "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file (default: moodvault_export_<date>.json).",
)
@click.option("--no-moods", is_flag=True, help="Leave out mood entries.")
@click.option("--no-weather", is_flag=True, help="Leave out weather fields.")
@click.option("--no-sleep", is_flag=True, help="Leave out sleep fields.")
@click.option("--no-activity", is_flag=True, help="Leave out activity fields.")
@click.option("--no-correlations", is_flag=True, help="Leave out stress, tags and notes.")
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="First day (YYYY-MM-DD).")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Last day (YYYY-MM-DD).")
@click.option("--full", is_flag=True, help="Full export including settings and saved analyses.")
def export_cmd(
    home: Path | None,
    output: Path | None,
    no_moods: bool,
    no_weather: bool,
    no_sleep: bool,
    no_activity: bool,
    no_correlations: bool,
    start: datetime | None,
    end: datetime | None,
    full: bool,
) -> None:
    """Write tracked data to a snapshot file."""
    store, config = _open_store(home)
    builder = SnapshotBuilder(store, int(config["snapshot"]["history_days"]))

    if full:
        snapshot = builder.export_all()
    else:
        filters = ExportFilters(
            moods=not no_moods,
            weather=not no_weather,
            sleep=not no_sleep,
            activity=not no_activity,
            correlations=not no_correlations,
        )
        try:
            snapshot = builder.export_selected(filters, (_as_date(start), _as_date(end)))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--start/--end") from e

    out = output or Path(f"moodvault_export_{snapshot.created_at:%Y-%m-%d}.json")
    atomic_write(out, encode(snapshot))
    click.echo(
        f"Exported {len(snapshot.mood_entries)} moods, {len(snapshot.goals)} goals, "
        f"{len(snapshot.correlation_entries)} correlation entries to {out}"
    )


@click.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--home",
    type=click.Path(path_type=Path),
    default=None,
    help="Override MV_HOME path.",
)
def import_cmd(file: Path, home: Path | None) -> None:
    """Merge a snapshot file into the local store.

    Moods and goals already present are never overwritten.
    """
    try:
        snapshot = decode(file.read_bytes())
    except FormatError as e:
        raise click.ClickException(f"{file.name}: {e}") from e

    store, _config = _open_store(home)
    report = MergeImporter(store).import_snapshot(snapshot)
    click.echo(report.summary())
    if report.imported_correlations:
        click.echo(f"Updated {report.imported_correlations} correlation entries")
    if report.error:
        raise click.ClickException(report.error)
