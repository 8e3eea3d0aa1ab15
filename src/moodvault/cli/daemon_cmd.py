"""CLI commands for the backup daemon: mv daemon start/status."""

from __future__ import annotations

import logging
import signal
import time
from pathlib import Path

import click

from moodvault.daemon.restore import RestoreOffer
from moodvault.daemon.service import is_process_running, read_pid, remove_pid, write_pid
from moodvault.engine import open_engine


@click.group("daemon")
def daemon_group() -> None:
    """Run automatic backups in the background."""


def _confirm_restore(offer: RestoreOffer) -> bool:
    return click.confirm(offer.message, default=True)


@daemon_group.command("start")
@click.option(
    "--home",
    type=click.Path(path_type=Path),
    default=None,
    help="Override MV_HOME path.",
)
@click.option("--no-watch", is_flag=True, help="Start without the store file watcher.")
@click.option("--no-restore-check", is_flag=True, help="Skip the startup restore offer.")
def daemon_start(home: Path | None, no_watch: bool, no_restore_check: bool) -> None:
    """Start the daemon (foreground)."""
    engine = open_engine(home)
    home_path = engine.home

    log_path = engine.state_dir / "daemon.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, str(engine.config.get("log_level", "info")).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(log_path), encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    log = logging.getLogger("moodvault.daemon")
    log.info("Daemon starting (home=%s, backend=%s)", home_path, engine.backend.name)

    write_pid(home_path)
    click.echo(f"Daemon started (home={home_path}, backend={engine.backend.info.display_name})")

    if not no_restore_check:
        result = engine.restorer().run_startup(_confirm_restore)
        if result is not None:
            click.echo(f"  Restore: {result.message or result.error}")

    components = []
    scheduler = engine.scheduler

    watcher = None
    if not no_watch:
        try:
            from moodvault.daemon.watcher import StoreWatcher

            watcher = StoreWatcher(engine.store.path, on_change=scheduler.trigger_if_needed)
            watcher.start()
            components.append("watcher")
            click.echo("  Store watcher: active")
        except RuntimeError as e:
            click.echo(f"  Store watcher: failed ({e})")

    try:
        scheduler.start()
        components.append("scheduler")
        click.echo("  Scheduler: active")
    except RuntimeError as e:
        click.echo(f"  Scheduler: failed ({e})")

    click.echo(f"\nDaemon running with: {', '.join(components) or 'nothing'}")
    click.echo("Press Ctrl+C to stop.")

    _shutdown = False

    def signal_handler(sig, frame):
        nonlocal _shutdown
        _shutdown = True

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while not _shutdown:
            time.sleep(1)
    except KeyboardInterrupt:
        pass

    click.echo("\nShutting down...")
    scheduler.stop()
    if watcher:
        watcher.stop()
    remove_pid(home_path)
    click.echo("Daemon stopped.")


@daemon_group.command("status")
@click.option(
    "--home",
    type=click.Path(path_type=Path),
    default=None,
    help="Override MV_HOME path.",
)
def daemon_status(home: Path | None) -> None:
    """Show whether the daemon is running."""
    engine = open_engine(home)
    pid = read_pid(engine.home)
    if pid is not None and is_process_running(pid):
        click.echo(f"Daemon running (PID {pid})")
    else:
        click.echo("Daemon not running")
        if pid is not None:
            remove_pid(engine.home)

    lines = engine.scheduler.get_log_lines(10)
    if lines:
        click.echo("\nRecent backups:")
        for line in lines:
            click.echo(f"  {line}")
