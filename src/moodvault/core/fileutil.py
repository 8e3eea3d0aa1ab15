"""File system utilities: atomic writes, staging files, permissions, locking."""

from __future__ import annotations

import contextlib
import logging
import os
import platform
import re
import tempfile
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

log = logging.getLogger(__name__)

FILE_MODE = 0o600
DIR_MODE = 0o700

_IS_WINDOWS = platform.system() == "Windows"


def safe_blob_prefix(hint: str, max_length: int = 64) -> str:
    """Turn a free-form name hint into a blob-name prefix.

    Keeps letters, digits and underscores so that the ``<prefix>_<epoch>``
    pattern stays parseable.
    """
    name = hint.strip().lower()
    name = name.replace("..", "").replace("/", "_").replace("\\", "_")
    name = re.sub(r"[^\w]+", "_", name)
    name = re.sub(r"_+", "_", name).strip("_")
    if len(name) > max_length:
        name = name[:max_length].rstrip("_")
    return name or "backup"


def ensure_dir(path: Path) -> Path:
    """Create directory with secure permissions if it doesn't exist."""
    path.mkdir(parents=True, exist_ok=True)
    if not _IS_WINDOWS:
        path.chmod(DIR_MODE)
    return path


def ensure_file_permissions(path: Path) -> None:
    """Set file permissions to owner-only read/write."""
    if not _IS_WINDOWS and path.exists():
        path.chmod(FILE_MODE)


def atomic_write(path: Path, content: str | bytes, encoding: str = "utf-8") -> None:
    """Write content to file atomically via temp file + rename.

    The file is never left partially written on crash.
    """
    ensure_dir(path.parent)

    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".tmp_",
        suffix=path.suffix,
    )
    try:
        if isinstance(content, bytes):
            with os.fdopen(fd, "wb") as f:
                f.write(content)
        else:
            with os.fdopen(fd, "w", encoding=encoding) as f:
                f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise

    ensure_file_permissions(path)


@contextmanager
def staging_file(
    directory: Path | None = None,
    suffix: str = ".json",
    content: bytes | None = None,
) -> Generator[Path, None, None]:
    """Yield a private temporary file that is deleted on every exit path.

    If ``content`` is given it is written before the path is yielded.
    """
    if directory is not None:
        ensure_dir(directory)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(directory) if directory is not None else None,
        prefix="mv_stage_",
        suffix=suffix,
    )
    path = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as f:
            if content is not None:
                f.write(content)
        ensure_file_permissions(path)
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            log.warning("Could not remove staging file %s", path, exc_info=True)


@contextmanager
def file_lock(path: Path) -> Generator[None, None, None]:
    """Cross-platform advisory file lock.

    Uses fcntl.flock on Unix, msvcrt.locking on Windows.
    """
    lock_path = path.parent / f".{path.name}.lock"
    ensure_dir(lock_path.parent)

    if _IS_WINDOWS:
        yield from _windows_lock(lock_path)
    else:
        yield from _unix_lock(lock_path)


def _unix_lock(lock_path: Path) -> Generator[None, None, None]:
    import fcntl

    with open(lock_path, "w") as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)


def _windows_lock(lock_path: Path) -> Generator[None, None, None]:
    import msvcrt

    with open(lock_path, "w") as fd:
        try:
            msvcrt.locking(fd.fileno(), msvcrt.LK_LOCK, 1)
            yield
        finally:
            with contextlib.suppress(OSError):
                msvcrt.locking(fd.fileno(), msvcrt.LK_UNLCK, 1)
