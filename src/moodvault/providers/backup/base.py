"""BackupBackend Protocol and shared helpers."""

from __future__ import annotations

import concurrent.futures
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, TypeVar, runtime_checkable

from moodvault.core.errors import BackupTimeoutError
from moodvault.core.fileutil import safe_blob_prefix
from moodvault.core.models import BackupBlobDescriptor, Result

T = TypeVar("T")

BLOB_EXTENSION = ".json"

_NAME_EPOCH_RE = re.compile(r"_(\d+)\.[A-Za-z0-9]+$")


@dataclass
class BackendInfo:
    """Metadata about a backup backend."""

    display_name: str
    version: str
    requires_auth: bool
    # Largest single blob the backend accepts; None means unbounded.
    max_blob_size: int | None = None


@runtime_checkable
class BackupBackend(Protocol):
    """Contract for remote durable blob storage."""

    @property
    def name(self) -> str:
        """Unique backend ID: 'drive' or 'cloud'."""
        ...

    @property
    def info(self) -> BackendInfo:
        ...

    def is_available(self) -> bool:
        ...

    def upload(self, data: bytes, name_hint: str) -> Result:
        """Store a blob. ``Result.value`` carries the backend blob id."""
        ...

    def list(self) -> list[BackupBlobDescriptor]:
        """All backup blobs, newest first."""
        ...

    def download(self, blob_id: str) -> bytes:
        ...

    def delete(self, blob_id: str) -> bool:
        ...

    def status(self) -> dict:
        """Display-oriented status for the UI."""
        ...


def make_blob_name(name_hint: str, now: datetime | None = None) -> str:
    """Build ``<prefix>_<epoch-ms>.json`` from a name hint."""
    now = now or datetime.now(timezone.utc)
    epoch_ms = int(now.timestamp() * 1000)
    return f"{safe_blob_prefix(name_hint)}_{epoch_ms}{BLOB_EXTENSION}"


def parse_name_epoch(name: str) -> datetime | None:
    """Extract the millisecond epoch embedded in a generated blob name."""
    m = _NAME_EPOCH_RE.search(name)
    if not m:
        return None
    try:
        return datetime.fromtimestamp(int(m.group(1)) / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def order_newest_first(
    blobs: list[BackupBlobDescriptor],
    trust_backend_time: bool = True,
) -> list[BackupBlobDescriptor]:
    """Sort blobs newest first.

    Backend timestamps win when ``trust_backend_time`` is set and present;
    otherwise the epoch embedded in the blob name is used. Blobs with
    neither sort last. Ties break on name so the order is stable.
    """

    def when(blob: BackupBlobDescriptor) -> datetime:
        if trust_backend_time and blob.created_at is not None:
            return blob.created_at
        return parse_name_epoch(blob.name) or blob.created_at or _EPOCH

    return sorted(blobs, key=lambda b: (when(b), b.name), reverse=True)


def matches_prefix(name: str, prefix: str) -> bool:
    return name.startswith(f"{safe_blob_prefix(prefix)}_") and name.endswith(BLOB_EXTENSION)


def call_with_timeout(fn: Callable[[], T], timeout: float, what: str) -> T:
    """Run ``fn`` in a worker thread and give up after ``timeout`` seconds.

    The worker is not interrupted; its result is discarded.
    """
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="mv-io")
    try:
        future = pool.submit(fn)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            raise BackupTimeoutError(f"{what} timed out after {timeout:g}s") from e
    finally:
        pool.shutdown(wait=False)


def format_size(size: int | None) -> str:
    if size is None:
        return "unknown size"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
