"""Automatic backup scheduler.

State machine::

    Idle -> Debouncing -> Evaluating -> Skipped -> Idle
                                     -> Uploading -> Succeeded -> Pruning -> Idle
                                                  -> Failed -> Idle

Store edits call ``trigger_if_needed()``, which only restarts a debounce
timer. The periodic APScheduler job and the debounce timer both run the
same evaluation, which has no side effects until the upload itself.
Failures leave ``last_successful_backup_at`` untouched so the next
evaluation retries.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from moodvault.core.models import BackupState, Result, _now
from moodvault.core.retention import DEFAULT_KEEP, RetentionManager
from moodvault.core.state import load_backup_state, mark_backup_succeeded, save_backup_state
from moodvault.core.store import LocalStore, is_engine_key
from moodvault.providers.backup.base import BackupBackend, format_size
from moodvault.providers.backup.bridge import StoreMirrorBridge
from moodvault.snapshot.builder import DEFAULT_HISTORY_DAYS, SnapshotBuilder
from moodvault.snapshot.codec import encode

log = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    EVALUATING = "evaluating"
    SKIPPED = "skipped"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    PRUNING = "pruning"
    FAILED = "failed"


class BackupScheduler:
    """Decide when to back up and drive the upload path.

    Never raises into callers: every outcome is a Result, and automatic
    failures are only logged.
    """

    def __init__(
        self,
        store: LocalStore,
        backend: BackupBackend,
        config: dict | None = None,
        bridge: StoreMirrorBridge | None = None,
        log_path: Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        config = config or {}
        self.store = store
        self.backend = backend
        self.bridge = bridge
        self._defaults = config.get("backup", {})
        self.debounce = float(self._defaults.get("debounce_seconds", 30))
        self.keep = int(self._defaults.get("keep", DEFAULT_KEEP))
        self.evaluation_minutes = float(self._defaults.get("evaluation_minutes", 60))
        self.name_prefix = self._defaults.get("name_prefix", "moodvault_backup")
        self.history_days = int(
            config.get("snapshot", {}).get("history_days", DEFAULT_HISTORY_DAYS)
        )
        self._log_path = log_path
        self._clock = clock or _now
        self._state = SchedulerState.IDLE
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._scheduler = None
        self.last_result: Result | None = None

    # --- State ---

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _set_state(self, state: SchedulerState) -> None:
        log.debug("Backup scheduler: %s -> %s", self._state.value, state.value)
        self._state = state

    @property
    def backup_state(self) -> BackupState:
        return load_backup_state(self.store, self._defaults)

    def _log_execution(self, status: str, message: str) -> None:
        """Append a line to backup.log."""
        if self._log_path is None:
            return
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        line = f"[{ts}] [{status}] {self.backend.name}: {message}\n"
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError:
            log.warning("Could not write %s", self._log_path, exc_info=True)

    def get_log_lines(self, n: int = 50) -> list[str]:
        """Read last N lines from backup.log."""
        if self._log_path is None or not self._log_path.exists():
            return []
        lines = self._log_path.read_text(encoding="utf-8").splitlines()
        return lines[-n:]

    # --- Triggering ---

    def trigger_if_needed(self) -> None:
        """Schedule an evaluation after the debounce delay.

        Each call restarts the delay, so a burst of edits yields one
        evaluation.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self._debounce_elapsed)
            self._timer.daemon = True
            self._set_state(SchedulerState.DEBOUNCING)
            self._timer.start()

    def on_store_change(self, key: str) -> None:
        """Store callback: user edits schedule a backup, engine writes do not."""
        if is_engine_key(key):
            return
        self.trigger_if_needed()

    def _debounce_elapsed(self) -> None:
        with self._lock:
            self._timer = None
        self._evaluate_safely()

    def flush(self) -> Result | None:
        """Run a pending debounced evaluation now. None if nothing was pending."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return None
        timer.cancel()
        return self.run_if_needed()

    def _evaluate_safely(self) -> None:
        try:
            self.run_if_needed()
        except Exception:
            self._set_state(SchedulerState.IDLE)
            log.warning("Backup evaluation failed", exc_info=True)

    # --- Evaluation ---

    def should_backup(self, now: datetime | None = None) -> bool:
        state = self.backup_state
        if not state.auto_backup_enabled:
            return False
        if not self.backend.is_available():
            return False
        if state.last_successful_backup_at is None:
            return True
        now = now or self._clock()
        return now - state.last_successful_backup_at >= timedelta(hours=state.interval_hours)

    def run_if_needed(self) -> Result | None:
        """Evaluate gating and back up when due. None when skipped."""
        self._set_state(SchedulerState.EVALUATING)
        if not self.should_backup():
            self._set_state(SchedulerState.SKIPPED)
            log.debug("Automatic backup not due")
            self._set_state(SchedulerState.IDLE)
            return None
        return self.perform_backup(manual=False)

    def perform_backup(self, manual: bool = False) -> Result:
        """Build, encode and upload a full snapshot, then prune.

        ``manual`` backups skip gating; their Result.error is meant to be
        shown to the user as-is. Automatic failures are logged and
        swallowed.
        """
        start = time.monotonic()
        self._set_state(SchedulerState.UPLOADING)
        kind = "manual" if manual else "automatic"
        try:
            result, data = self._upload_snapshot()
        except Exception as e:
            log.debug("Backup upload raised", exc_info=True)
            result, data = Result.fail(f"Backup failed: {e}"), None

        duration = time.monotonic() - start
        if not result.success:
            return self._record_failure(result, kind, duration, manual)

        self._set_state(SchedulerState.SUCCEEDED)
        try:
            mark_backup_succeeded(self.store, self._clock(), self._defaults)
        except Exception as e:
            log.debug("Saving backup state raised", exc_info=True)
            failed = Result.fail(f"Backup uploaded but its state could not be saved: {e}")
            return self._record_failure(failed, kind, duration, manual)

        self._set_state(SchedulerState.PRUNING)
        try:
            pruned = RetentionManager(self.backend).prune(self.keep)
            for err in pruned.errors:
                log.warning("Retention: %s", err)
        except Exception as e:
            log.warning("Retention after backup failed: %s", e)

        if self.bridge is not None and self.bridge.is_available():
            self.bridge.mirror(data)

        self._log_execution("OK", f"{kind}: {result.message} ({duration:.1f}s)")
        log.info("%s", result.message)
        self.last_result = result
        self._set_state(SchedulerState.IDLE)
        return result

    def _record_failure(self, result: Result, kind: str, duration: float, manual: bool) -> Result:
        self._set_state(SchedulerState.FAILED)
        self._log_execution("FAIL", f"{kind}: {result.error} ({duration:.1f}s)")
        if manual:
            log.info("Manual backup failed: %s", result.error)
        else:
            log.warning("Automatic backup failed: %s", result.error)
        self.last_result = result
        self._set_state(SchedulerState.IDLE)
        return result

    def _upload_snapshot(self) -> tuple[Result, bytes]:
        snapshot = SnapshotBuilder(self.store, self.history_days, self._clock).export_all()
        data = encode(snapshot)
        limit = self.backend.info.max_blob_size
        if limit is not None and len(data) > limit:
            return Result.fail(
                f"Backup is {format_size(len(data))}, above the "
                f"{format_size(limit)} limit of {self.backend.info.display_name}"
            ), data

        uploaded = self.backend.upload(data, self.name_prefix)
        if not uploaded.success:
            return uploaded, data
        return Result.ok(
            f"Backed up {len(snapshot.mood_entries)} moods, {len(snapshot.goals)} goals "
            f"to {self.backend.info.display_name} ({format_size(len(data))})",
            value=uploaded.value,
        ), data

    # --- Settings ---

    def set_auto_backup_enabled(self, enabled: bool, evaluate: bool = True) -> None:
        """Persist the toggle. Enabling schedules an evaluation unless
        ``evaluate`` is False.
        """
        state = self.backup_state
        state.auto_backup_enabled = enabled
        save_backup_state(self.store, state)
        log.info("Automatic backup %s", "enabled" if enabled else "disabled")
        if enabled and evaluate:
            self.trigger_if_needed()

    def set_interval_hours(self, hours: int) -> None:
        if hours < 1:
            raise ValueError(f"Backup interval must be at least 1 hour, got {hours}")
        state = self.backup_state
        state.interval_hours = hours
        save_backup_state(self.store, state)

    def status(self) -> dict:
        state = self.backup_state
        last = state.last_successful_backup_at
        next_due = last + timedelta(hours=state.interval_hours) if last else None
        info = {
            "state": self._state.value,
            "backend": self.backend.name,
            "backend_available": self.backend.is_available(),
            "auto_backup_enabled": state.auto_backup_enabled,
            "interval_hours": state.interval_hours,
            "last_successful_backup_at": last.isoformat() if last else None,
            "next_due_at": next_due.isoformat() if next_due else None,
            "keep": self.keep,
            "running": self.is_running,
        }
        if self.last_result is not None:
            info["last_result"] = self.last_result.message or self.last_result.error
        if self.bridge is not None:
            info["bridge"] = self.bridge.get_status()
        return info

    # --- Periodic evaluation ---

    def start(self) -> None:
        """Start periodic evaluation; the first one runs immediately."""
        try:
            from apscheduler.schedulers.background import BackgroundScheduler
            from apscheduler.triggers.interval import IntervalTrigger
        except ImportError as e:
            raise RuntimeError(
                f"APScheduler not installed: {e}. Install with: pip install moodvault[daemon]"
            ) from e

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._evaluate_safely,
            trigger=IntervalTrigger(minutes=self.evaluation_minutes),
            id="backup-evaluation",
            name="backup-evaluation",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        log.info("BackupScheduler started (every %g min)", self.evaluation_minutes)

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self._set_state(SchedulerState.IDLE)
        log.info("BackupScheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
