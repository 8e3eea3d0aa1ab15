"""Platform container backend (iCloud Drive on macOS)."""

from __future__ import annotations

import logging
import platform
import shutil
from datetime import datetime, timezone
from pathlib import Path

from moodvault.core.errors import AvailabilityError, BackupError, NetworkError
from moodvault.core.fileutil import ensure_dir, staging_file
from moodvault.core.models import BackupBlobDescriptor, Result
from moodvault.providers.backup.base import (
    BackendInfo,
    call_with_timeout,
    format_size,
    make_blob_name,
    matches_prefix,
    order_newest_first,
    parse_name_epoch,
)

log = logging.getLogger(__name__)


class CloudBackend:
    """Backups as files in a synced platform container.

    No sign-in step: the OS syncs the container. All transfers go through
    a private staging file that is removed whether or not the copy worked.
    """

    def __init__(self, config: dict | None = None) -> None:
        config = config or {}
        self._container = Path(config.get(
            "container_path",
            "~/Library/Mobile Documents/iCloud~com~moodvault~app/Documents",
        )).expanduser()
        self._folder = config.get("folder", "MoodVault_Backups")
        staging = config.get("staging_dir")
        self._staging_dir = Path(staging).expanduser() if staging else None
        self._platforms = list(config.get("platforms", ["Darwin"]))
        self._timeout = float(config.get("timeout_seconds", 20))
        self._prefix = config.get("name_prefix", "moodvault_backup")

    @property
    def name(self) -> str:
        return "cloud"

    @property
    def info(self) -> BackendInfo:
        return BackendInfo(
            display_name="iCloud Drive",
            version="1.0.0",
            requires_auth=False,
        )

    @property
    def folder_path(self) -> Path:
        return self._container / self._folder

    def is_available(self) -> bool:
        if platform.system() not in self._platforms:
            return False
        return self._container.is_dir()

    def _require_available(self) -> None:
        if not self.is_available():
            raise AvailabilityError(
                f"iCloud container not available on {platform.system()}: {self._container}"
            )

    def _resolve(self, blob_id: str) -> Path:
        """Map a blob id (``<folder>/<name>``) to a path inside the folder."""
        name = Path(blob_id).name
        if not name or name != blob_id.rsplit("/", 1)[-1] or name in (".", ".."):
            raise BackupError(f"Invalid blob id: {blob_id!r}")
        return self.folder_path / name

    def upload(self, data: bytes, name_hint: str) -> Result:
        try:
            self._require_available()
            ensure_dir(self.folder_path)
            name = make_blob_name(name_hint, datetime.now(timezone.utc))
            target = self.folder_path / name
            with staging_file(self._staging_dir, content=data) as staged:
                call_with_timeout(
                    lambda: shutil.copyfile(staged, target), self._timeout, "iCloud upload",
                )
        except OSError as e:
            log.warning("iCloud upload failed: %s", e)
            return Result.fail(f"Upload failed: {e}")
        except BackupError as e:
            log.warning("iCloud upload failed: %s", e)
            return Result.fail(f"Upload failed: {e}")

        return Result.ok(
            f"Backup saved to iCloud Drive ({format_size(len(data))})",
            value=f"{self._folder}/{name}",
        )

    def list(self) -> list[BackupBlobDescriptor]:
        self._require_available()
        if not self.folder_path.exists():
            return []

        def scan() -> list[BackupBlobDescriptor]:
            found = []
            for entry in self.folder_path.iterdir():
                if not entry.is_file() or not matches_prefix(entry.name, self._prefix):
                    continue
                found.append(BackupBlobDescriptor(
                    id=f"{self._folder}/{entry.name}",
                    name=entry.name,
                    created_at=parse_name_epoch(entry.name),
                    size=entry.stat().st_size,
                ))
            return found

        try:
            blobs = call_with_timeout(scan, self._timeout, "iCloud list")
        except OSError as e:
            raise NetworkError(f"iCloud list failed: {e}") from e
        # Sync rewrites file mtimes, so only the name epoch is trusted.
        return order_newest_first(blobs, trust_backend_time=False)

    def download(self, blob_id: str) -> bytes:
        self._require_available()
        source = self._resolve(blob_id)
        if not source.exists():
            raise BackupError(f"Backup not found: {blob_id}")
        try:
            with staging_file(self._staging_dir) as staged:
                call_with_timeout(
                    lambda: shutil.copyfile(source, staged), self._timeout, "iCloud download",
                )
                return staged.read_bytes()
        except OSError as e:
            raise NetworkError(f"iCloud download failed: {e}") from e

    def delete(self, blob_id: str) -> bool:
        try:
            self._resolve(blob_id).unlink()
        except FileNotFoundError:
            return False
        except (OSError, BackupError) as e:
            log.warning("iCloud delete of %s failed: %s", blob_id, e)
            return False
        return True

    def status(self) -> dict:
        return {
            "type": self.info.display_name,
            "available": self.is_available(),
            "platform": platform.system(),
            "path": str(self.folder_path),
        }
