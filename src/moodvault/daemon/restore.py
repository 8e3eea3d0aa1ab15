"""Startup restore offer and restore operations.

A restore is offered at most once per install: only when the store holds
no mood entries, the offer was never made before and the backend lists at
least one backup. The UI has to confirm; nothing here restores silently.
Restore never prunes remote backups.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from moodvault.core.errors import BackupError
from moodvault.core.models import BackupBlobDescriptor, Result, _now, parse_optional_datetime
from moodvault.core.store import LocalStore, count_mood_entries
from moodvault.providers.backup.base import BackupBackend
from moodvault.providers.backup.bridge import StoreMirrorBridge
from moodvault.snapshot.codec import decode
from moodvault.snapshot.importer import MergeImporter

log = logging.getLogger(__name__)

PROMPT_SHOWN_KEY = "restore_prompt_shown"
LAST_CHECK_KEY = "restore_last_check"


@dataclass(frozen=True)
class RestoreOffer:
    """Confirmation request handed to the UI."""

    latest: BackupBlobDescriptor
    backup_count: int
    backend_name: str

    @property
    def message(self) -> str:
        when = self.latest.created_at.strftime("%Y-%m-%d %H:%M") if self.latest.created_at else "unknown date"
        return (
            f"Found {self.backup_count} backup(s) on {self.backend_name}. "
            f"Restore the latest one from {when}?"
        )


class RestoreOrchestrator:
    def __init__(
        self,
        store: LocalStore,
        backend: BackupBackend,
        config: dict | None = None,
        bridge: StoreMirrorBridge | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        config = config or {}
        self.store = store
        self.backend = backend
        self.bridge = bridge
        self.check_interval = timedelta(
            hours=float(config.get("restore", {}).get("check_interval_hours", 24))
        )
        self._clock = clock or _now

    def _checked_recently(self, now: datetime) -> bool:
        try:
            last = parse_optional_datetime(self.store.get(LAST_CHECK_KEY))
        except ValueError:
            return False
        return last is not None and now - last < self.check_interval

    def check_on_startup(self, now: datetime | None = None) -> RestoreOffer | None:
        """Return a restore offer if every gate holds, else None.

        Making an offer sets the sticky prompt flag.
        """
        now = now or self._clock()
        if self.store.get(PROMPT_SHOWN_KEY):
            return None
        if self._checked_recently(now):
            log.debug("Restore check already ran within %s", self.check_interval)
            return None
        self.store.set(LAST_CHECK_KEY, now.isoformat())

        if count_mood_entries(self.store) > 0:
            return None
        if not self.backend.is_available():
            log.debug("Backend %s unavailable, no restore offer", self.backend.name)
            return None
        try:
            blobs = self.backend.list()
        except BackupError as e:
            log.warning("Could not list backups for restore check: %s", e)
            return None
        if not blobs:
            return None

        self.store.set(PROMPT_SHOWN_KEY, True)
        log.info("Offering restore of %s (%d backups)", blobs[0].name, len(blobs))
        return RestoreOffer(
            latest=blobs[0],
            backup_count=len(blobs),
            backend_name=self.backend.info.display_name,
        )

    def run_startup(self, confirm: Callable[[RestoreOffer], bool]) -> Result | None:
        """Check, ask via ``confirm`` and restore. None when nothing was offered."""
        offer = self.check_on_startup()
        if offer is None:
            return None
        if not confirm(offer):
            log.info("User declined restore")
            return Result.ok("Restore declined")
        return self.restore(offer.latest.id)

    def restore_latest(self) -> Result:
        try:
            blobs = self.backend.list()
        except BackupError as e:
            return Result.fail(f"Could not list backups: {e}")
        if not blobs:
            return Result.fail("No backups found")
        return self.restore(blobs[0].id)

    def restore(self, blob_id: str) -> Result:
        """Download, decode and merge one backup blob."""
        try:
            data = self.backend.download(blob_id)
        except BackupError as e:
            return Result.fail(f"Download failed: {e}")
        return self._import(data, source=blob_id)

    def restore_from_mirror(self) -> Result:
        """Restore from the chunked copy kept in the local store."""
        if self.bridge is None:
            return Result.fail("Store mirror is not configured")
        try:
            data = self.bridge.read_payload()
        except BackupError as e:
            return Result.fail(f"Mirrored backup unusable: {e}")
        return self._import(data, source="store mirror")

    def _import(self, data: bytes, source: str) -> Result:
        try:
            snapshot = decode(data)
        except BackupError as e:
            return Result.fail(f"Backup unreadable: {e}")

        report = MergeImporter(self.store).import_snapshot(snapshot)
        if report.error:
            return Result(success=False, error=report.error, value=report)
        log.info("Restored from %s: %s", source, report.summary())
        return Result.ok(f"Restore completed: {report.summary()}", value=report)

    def reset_prompt(self) -> None:
        """Allow the startup offer to be made again."""
        self.store.remove(PROMPT_SHOWN_KEY)
        self.store.remove(LAST_CHECK_KEY)
