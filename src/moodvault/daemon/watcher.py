"""Store file watcher: turns edits made by the tracking app into backup triggers."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from moodvault.core.store import is_engine_key

log = logging.getLogger(__name__)


def user_data_fingerprint(path: Path) -> str | None:
    """Digest of the store's user-owned keys; None if the file is unreadable.

    Engine-owned keys are left out so the engine's own writes (backup
    state, mirror chunks) do not look like user edits.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    user = {k: v for k, v in data.items() if not is_engine_key(k)}
    blob = json.dumps(user, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


class StoreWatcher:
    """Watch the store file and call ``on_change`` when user data changed.

    Uses watchdog on the store's directory. Debouncing is left to the
    callback (the backup scheduler already coalesces bursts).
    """

    def __init__(self, store_path: Path, on_change: Callable[[], None]) -> None:
        self.store_path = store_path
        self._on_change = on_change
        self._observer = None
        self._lock = threading.Lock()
        self._fingerprint = user_data_fingerprint(store_path)
        self._running = False

    def start(self) -> None:
        try:
            from watchdog.observers import Observer
        except ImportError as e:
            raise RuntimeError(
                f"watchdog not installed: {e}. Install with: pip install moodvault[daemon]"
            ) from e

        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        self._observer = Observer()
        self._observer.schedule(_ChangeHandler(self), str(self.store_path.parent), recursive=False)
        self._observer.start()
        self._running = True
        log.info("StoreWatcher started: %s", self.store_path)

    def stop(self) -> None:
        self._running = False
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        log.info("StoreWatcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _on_fs_event(self, src_path: str) -> None:
        """Called by the watchdog handler for every file event in the directory."""
        if os.path.basename(src_path) != self.store_path.name:
            return
        with self._lock:
            current = user_data_fingerprint(self.store_path)
            if current is None or current == self._fingerprint:
                return
            self._fingerprint = current
        log.debug("Store changed: %s", self.store_path)
        try:
            self._on_change()
        except Exception:
            log.warning("Store change handler failed", exc_info=True)


class _ChangeHandler:
    """Watchdog event handler that delegates to StoreWatcher."""

    def __init__(self, watcher: StoreWatcher) -> None:
        self._watcher = watcher

    def dispatch(self, event) -> None:
        if event.is_directory:
            return
        src_path = event.src_path
        if event.event_type == "moved":
            # Atomic writes land as a rename onto the store file.
            src_path = getattr(event, "dest_path", event.src_path)
        self._watcher._on_fs_event(src_path)
