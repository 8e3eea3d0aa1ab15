"""Retention: keep the newest N backup blobs, delete the rest."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from moodvault.core.models import BackupBlobDescriptor
from moodvault.providers.backup.base import BackupBackend

log = logging.getLogger(__name__)

DEFAULT_KEEP = 5


@dataclass
class RetentionResult:
    """Result of a retention run."""

    kept: list[BackupBlobDescriptor] = field(default_factory=list)
    deleted: list[BackupBlobDescriptor] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class RetentionManager:
    """Prune a backend down to its newest ``keep`` blobs.

    Only the scheduler calls this, and only after an upload succeeded.
    Restore never prunes.
    """

    def __init__(self, backend: BackupBackend) -> None:
        self.backend = backend

    def plan(self, keep: int = DEFAULT_KEEP) -> tuple[list[BackupBlobDescriptor], list[BackupBlobDescriptor]]:
        """Return (kept, to_delete) without deleting anything."""
        if keep < 1:
            raise ValueError(f"keep must be at least 1, got {keep}")
        blobs = self.backend.list()
        return blobs[:keep], blobs[keep:]

    def prune(self, keep: int = DEFAULT_KEEP) -> RetentionResult:
        kept, doomed = self.plan(keep)
        result = RetentionResult(kept=kept)
        for blob in doomed:
            if self.backend.delete(blob.id):
                result.deleted.append(blob)
                log.debug("Pruned backup %s", blob.name)
            else:
                result.errors.append(f"Could not delete {blob.name}")

        if doomed:
            log.info(
                "Retention: kept %d, deleted %d of %d old backups",
                len(kept), len(result.deleted), len(doomed),
            )
        return result
