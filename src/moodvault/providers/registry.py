"""Backup backend registry and startup platform selection."""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field

from moodvault.providers.backup.base import BackupBackend
from moodvault.providers.backup.gdrive import DriveBackend
from moodvault.providers.backup.icloud import CloudBackend

log = logging.getLogger(__name__)


@dataclass
class BackendEntry:
    """Metadata about a registered backend."""

    name: str  # "drive", "cloud"
    cls: type
    config_section: str  # config.yaml section passed to the constructor
    extras: list[str] = field(default_factory=list)  # pip extras needed


class BackendRegistry:
    """Known backup backends, keyed by name."""

    def __init__(self) -> None:
        self._backends: dict[str, BackendEntry] = {}

    def register(
        self,
        name: str,
        cls: type,
        config_section: str,
        extras: list[str] | None = None,
    ) -> None:
        self._backends[name] = BackendEntry(
            name=name, cls=cls, config_section=config_section, extras=extras or [],
        )
        log.debug("Registered backend: %s", name)

    def get_entry(self, name: str) -> BackendEntry:
        entry = self._backends.get(name)
        if entry is None:
            raise KeyError(f"Unknown backend: {name!r}")
        return entry

    def create(self, name: str, config: dict) -> BackupBackend:
        """Instantiate a backend from the full app config."""
        entry = self.get_entry(name)
        backup = config.get("backup", {})
        section = {
            "timeout_seconds": backup.get("timeout_seconds", 20),
            "name_prefix": backup.get("name_prefix", "moodvault_backup"),
            **config.get(entry.config_section, {}),
        }
        return entry.cls(section)

    def names(self) -> list[str]:
        return list(self._backends)


registry = BackendRegistry()
registry.register("drive", DriveBackend, "drive", extras=["drive"])
registry.register("cloud", CloudBackend, "cloud")


def default_backend_name(config: dict) -> str:
    """Pick the backend for this machine: the platform container where the
    platform provides one, account-linked Drive everywhere else.
    """
    cloud_platforms = config.get("cloud", {}).get("platforms", ["Darwin"])
    return "cloud" if platform.system() in cloud_platforms else "drive"


def select_backend(config: dict, reg: BackendRegistry | None = None) -> BackupBackend:
    """Choose the one backend used for the whole process.

    ``backup.backend`` may force a choice; ``auto`` uses platform detection.
    """
    reg = reg or registry
    name = config.get("backup", {}).get("backend", "auto")
    if name in (None, "", "auto"):
        name = default_backend_name(config)
    backend = reg.create(name, config)
    log.info("Using backup backend: %s", name)
    return backend
