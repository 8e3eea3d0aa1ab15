"""CLI entry point for MoodVault (mv command)."""

import click

from moodvault import __version__
from moodvault.cli.backup_cmd import backup_group
from moodvault.cli.daemon_cmd import daemon_group
from moodvault.cli.export_cmd import export_cmd, import_cmd


@click.group()
@click.version_option(version=__version__, prog_name="moodvault")
def cli() -> None:
    """MoodVault: backup, export and restore for tracked moods."""


cli.add_command(backup_group)
cli.add_command(export_cmd)
cli.add_command(import_cmd)
cli.add_command(daemon_group)


if __name__ == "__main__":
    cli()
