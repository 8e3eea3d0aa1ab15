"""BackupState persistence through the local store.

The state is read fresh for every decision and written back immediately;
nothing here is held between operations.
"""

from __future__ import annotations

import logging
from datetime import datetime

from moodvault.core.models import BackupState, parse_optional_datetime
from moodvault.core.store import LocalStore

log = logging.getLogger(__name__)

BACKUP_STATE_KEY = "backup_state"


def load_backup_state(store: LocalStore, defaults: dict | None = None) -> BackupState:
    """Read BackupState, filling unset fields from the ``backup`` config section."""
    defaults = defaults or {}
    raw = store.get(BACKUP_STATE_KEY)
    if not isinstance(raw, dict):
        raw = {}

    try:
        last = parse_optional_datetime(raw.get("last_successful_backup_at"))
    except ValueError:
        log.warning("Ignoring unparsable last backup time: %r", raw.get("last_successful_backup_at"))
        last = None

    enabled = raw.get("auto_backup_enabled")
    if enabled is None:
        enabled = defaults.get("auto_enabled", True)

    interval = raw.get("interval_hours")
    if not isinstance(interval, int) or interval <= 0:
        interval = int(defaults.get("interval_hours", 24))

    return BackupState(
        last_successful_backup_at=last,
        auto_backup_enabled=bool(enabled),
        interval_hours=interval,
    )


def save_backup_state(store: LocalStore, state: BackupState) -> None:
    store.set(BACKUP_STATE_KEY, {
        "last_successful_backup_at": (
            state.last_successful_backup_at.isoformat()
            if state.last_successful_backup_at else None
        ),
        "auto_backup_enabled": state.auto_backup_enabled,
        "interval_hours": state.interval_hours,
    })


def mark_backup_succeeded(store: LocalStore, when: datetime, defaults: dict | None = None) -> None:
    state = load_backup_state(store, defaults)
    state.last_successful_backup_at = when
    save_backup_state(store, state)
