"""Platform coarse-backup bridge.

Mirrors the latest encoded snapshot into the local store as size-capped
base64 chunks, so that a system-level backup of the app's store (device
backup, Time Machine, ...) also carries a restorable copy. After staging,
an optional system command is asked to start that coarse backup.
"""

from __future__ import annotations

import base64
import binascii
import logging
import shutil
import subprocess
from datetime import datetime, timezone

from moodvault.core.errors import IncompleteManifestError
from moodvault.core.models import ChunkManifest, Result
from moodvault.core.store import LocalStore
from moodvault.snapshot.codec import chunk, iter_chunks, reconstruct

log = logging.getLogger(__name__)

CHUNK_COUNT_KEY = "backup_chunk_count"
CHUNK_META_KEY = "backup_chunk_meta"
DEFAULT_CHUNK_SIZE = 750_000
_REQUEST_TIMEOUT = 60


def chunk_key(index: int) -> str:
    return f"backup_chunk_{index}"


class StoreMirrorBridge:
    """Chunked snapshot mirror in the local store plus a system backup hook."""

    def __init__(self, store: LocalStore, config: dict | None = None) -> None:
        config = config or {}
        self.store = store
        self.enabled = bool(config.get("enabled", False))
        self.chunk_size = int(config.get("chunk_size", DEFAULT_CHUNK_SIZE))
        self.command = list(config.get("request_command") or [])
        self.timeout = float(config.get("request_timeout", _REQUEST_TIMEOUT))

    def is_available(self) -> bool:
        return self.enabled

    def _meta(self) -> dict:
        meta = self.store.get(CHUNK_META_KEY)
        return dict(meta) if isinstance(meta, dict) else {}

    def stage(self, data: bytes) -> ChunkManifest:
        """Replace the mirrored payload with ``data``."""
        manifest = chunk(data, self.chunk_size)

        old_count = self.store.get(CHUNK_COUNT_KEY)
        # Drop the count first: an interrupted write then reads as incomplete.
        self.store.remove(CHUNK_COUNT_KEY)
        if isinstance(old_count, int):
            for i in range(manifest.chunk_count, old_count):
                self.store.remove(chunk_key(i))

        for i, piece in iter_chunks(manifest):
            self.store.set(chunk_key(i), base64.b64encode(piece).decode("ascii"))

        meta = self._meta()
        meta.update(
            total_size=manifest.total_size,
            staged_at=datetime.now(timezone.utc).isoformat(),
        )
        self.store.set(CHUNK_META_KEY, meta)
        self.store.set(CHUNK_COUNT_KEY, manifest.chunk_count)
        log.debug("Mirrored %d bytes as %d chunks", len(data), manifest.chunk_count)
        return manifest

    def request_backup(self) -> Result:
        """Ask the system to run its coarse backup of the app store."""
        if not self.command:
            result = Result.ok("No system backup command configured")
        elif shutil.which(self.command[0]) is None:
            result = Result.fail(f"System backup command not found: {self.command[0]}")
        else:
            try:
                proc = subprocess.run(
                    self.command, capture_output=True, text=True, timeout=self.timeout,
                )
            except subprocess.TimeoutExpired:
                result = Result.fail(f"System backup request timed out after {self.timeout:g}s")
            except OSError as e:
                result = Result.fail(f"System backup request failed: {e}")
            else:
                if proc.returncode == 0:
                    result = Result.ok("System backup requested")
                else:
                    result = Result.fail(
                        f"System backup command exited {proc.returncode}: {proc.stderr.strip()[:200]}"
                    )

        meta = self._meta()
        meta.update(
            last_request_at=result.timestamp.isoformat(),
            last_request_ok=result.success,
            last_request_message=result.message or result.error,
        )
        self.store.set(CHUNK_META_KEY, meta)
        return result

    def mirror(self, data: bytes) -> Result:
        """Stage ``data`` and request a system backup. Never raises."""
        if not self.is_available():
            return Result.fail("Store mirror is disabled")
        try:
            manifest = self.stage(data)
        except Exception as e:
            log.warning("Store mirror staging failed: %s", e, exc_info=True)
            return Result.fail(f"Store mirror failed: {e}")
        result = self.request_backup()
        if not result.success:
            log.warning("%s", result.error)
        return Result(
            success=result.success,
            message=f"Mirrored {manifest.chunk_count} chunks; {result.message}" if result.success else None,
            error=result.error,
        )

    def read_payload(self) -> bytes:
        """Reassemble the mirrored snapshot bytes.

        Raises IncompleteManifestError if anything is missing or corrupt.
        """
        count = self.store.get(CHUNK_COUNT_KEY)
        if isinstance(count, bool) or not isinstance(count, int):
            raise IncompleteManifestError("No mirrored backup in the local store")

        chunks: dict[int, bytes] = {}
        for i in range(count):
            raw = self.store.get(chunk_key(i))
            if not isinstance(raw, str):
                continue
            try:
                chunks[i] = base64.b64decode(raw.encode("ascii"), validate=True)
            except (binascii.Error, UnicodeEncodeError):
                log.warning("Mirrored chunk %d is corrupt", i)

        total = self._meta().get("total_size")
        return reconstruct(ChunkManifest(
            chunk_count=count,
            chunks=chunks,
            total_size=total if isinstance(total, int) else None,
        ))

    def get_status(self) -> dict:
        meta = self._meta()
        count = self.store.get(CHUNK_COUNT_KEY)
        return {
            "available": self.is_available(),
            "chunk_count": count if isinstance(count, int) else 0,
            "total_size": meta.get("total_size"),
            "staged_at": meta.get("staged_at"),
            "last_request_at": meta.get("last_request_at"),
            "last_request_ok": meta.get("last_request_ok"),
            "last_request_message": meta.get("last_request_message"),
        }
