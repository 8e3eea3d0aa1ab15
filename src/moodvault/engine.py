"""Wiring: build the store, backend and bridge for one MoodVault home."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from moodvault.core.config import load_config, resolve_home, store_path
from moodvault.core.store import JsonFileStore
from moodvault.daemon.restore import RestoreOrchestrator
from moodvault.daemon.scheduler import BackupScheduler
from moodvault.providers.backup.base import BackupBackend
from moodvault.providers.backup.bridge import StoreMirrorBridge
from moodvault.providers.registry import registry, select_backend

log = logging.getLogger(__name__)


@dataclass
class Engine:
    """Everything the CLI and daemon need, selected once per process."""

    home: Path
    config: dict
    store: JsonFileStore
    backend: BackupBackend
    bridge: StoreMirrorBridge
    _scheduler: BackupScheduler | None = field(default=None, repr=False)

    @property
    def state_dir(self) -> Path:
        return self.home / ".mv"

    @property
    def backup_log_path(self) -> Path:
        return self.state_dir / "backup.log"

    @property
    def scheduler(self) -> BackupScheduler:
        if self._scheduler is None:
            self._scheduler = BackupScheduler(
                self.store,
                self.backend,
                self.config,
                bridge=self.bridge,
                log_path=self.backup_log_path,
            )
        return self._scheduler

    def restorer(self) -> RestoreOrchestrator:
        return RestoreOrchestrator(self.store, self.backend, self.config, bridge=self.bridge)


def open_engine(home: Path | None = None, backend: str | None = None) -> Engine:
    """Load config for ``home`` and build the engine.

    ``backend`` overrides platform selection (``drive`` or ``cloud``).
    """
    home_path = home or resolve_home()
    config = load_config(home_path / ".mv" / "config.yaml")
    config["home"] = str(home_path)

    if backend:
        chosen = registry.create(backend, config)
    else:
        chosen = select_backend(config)

    store = JsonFileStore(store_path(config))
    return Engine(
        home=home_path,
        config=config,
        store=store,
        backend=chosen,
        bridge=StoreMirrorBridge(store, config.get("bridge", {})),
    )
