"""Local key-value store: the source of snapshots and the target of imports.

The tracking feature owns this store; the backup engine only reads and
writes it through the small ``LocalStore`` contract. Values are plain
JSON-compatible objects.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterator
from datetime import date
from pathlib import Path
from typing import Protocol, runtime_checkable

from moodvault.core.fileutil import atomic_write, file_lock
from moodvault.core.models import Segment

log = logging.getLogger(__name__)

# --- Key layout ---

GOALS_KEY = "mood_goals"
NOTIFICATION_SETTINGS_KEY = "notification_settings"
USER_PREFERENCES_KEY = "user_preferences"
SAVED_ANALYSES_KEY = "saved_ai_analyses"

# Keys written by the backup engine itself; changes to these are not
# user edits and must not schedule another backup.
ENGINE_KEY_PREFIXES = ("backup_state", "backup_chunk_", "restore_")

_MOOD_KEY_RE = re.compile(r"^mood_(\d{4}-\d{2}-\d{2})_(\d)$")
_CORRELATION_KEY_RE = re.compile(r"^correlation_(\d{4}-\d{2}-\d{2})$")


def mood_key(day: date, segment: Segment | int) -> str:
    return f"mood_{day.isoformat()}_{int(segment)}"


def parse_mood_key(key: str) -> tuple[date, Segment] | None:
    """Return (date, segment) for a mood entry key, None for other keys."""
    m = _MOOD_KEY_RE.match(key)
    if not m:
        return None
    try:
        return date.fromisoformat(m.group(1)), Segment(int(m.group(2)))
    except ValueError:
        return None


def correlation_key(day: date) -> str:
    return f"correlation_{day.isoformat()}"


def parse_correlation_key(key: str) -> date | None:
    m = _CORRELATION_KEY_RE.match(key)
    if not m:
        return None
    try:
        return date.fromisoformat(m.group(1))
    except ValueError:
        return None


def is_engine_key(key: str) -> bool:
    return key.startswith(ENGINE_KEY_PREFIXES)


def decode_value(value: object) -> object:
    """Store values may hold JSON text written by older app versions."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def count_mood_entries(store: LocalStore) -> int:
    """Count tracked mood entries (the primary record kind)."""
    return sum(1 for k in store.keys() if parse_mood_key(k) is not None)


# --- Contract ---


@runtime_checkable
class LocalStore(Protocol):
    """Contract for the primary key-value record store."""

    def get(self, key: str, default: object = None) -> object:
        ...

    def set(self, key: str, value: object) -> None:
        ...

    def has(self, key: str) -> bool:
        ...

    def remove(self, key: str) -> None:
        ...

    def keys(self) -> list[str]:
        ...


ChangeCallback = Callable[[str], None]


def _notify(callback: ChangeCallback | None, key: str) -> None:
    if callback is None:
        return
    try:
        callback(key)
    except Exception:
        log.warning("Store change callback failed for %s", key, exc_info=True)


class MemoryStore:
    """Dict-backed store."""

    def __init__(
        self,
        data: dict | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self._data: dict = dict(data or {})
        self.on_change = on_change

    def get(self, key: str, default: object = None) -> object:
        return self._data.get(key, default)

    def set(self, key: str, value: object) -> None:
        self._data[key] = value
        _notify(self.on_change, key)

    def has(self, key: str) -> bool:
        return key in self._data

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            _notify(self.on_change, key)

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())


class JsonFileStore:
    """Store persisted as one JSON document.

    Every mutation is a locked read-modify-write followed by an atomic
    replace, so readers never see a half-written file.
    """

    def __init__(self, path: Path, on_change: ChangeCallback | None = None) -> None:
        self.path = path
        self.on_change = on_change

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            log.warning("Store file %s unreadable, treating as empty", self.path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            log.warning("Store file %s is not an object, treating as empty", self.path)
            return {}
        return data

    def _write(self, data: dict) -> None:
        atomic_write(self.path, json.dumps(data, indent=1, ensure_ascii=False))

    def get(self, key: str, default: object = None) -> object:
        return self._read().get(key, default)

    def set(self, key: str, value: object) -> None:
        with file_lock(self.path):
            data = self._read()
            data[key] = value
            self._write(data)
        _notify(self.on_change, key)

    def has(self, key: str) -> bool:
        return key in self._read()

    def remove(self, key: str) -> None:
        with file_lock(self.path):
            data = self._read()
            if key not in data:
                return
            del data[key]
            self._write(data)
        _notify(self.on_change, key)

    def keys(self) -> list[str]:
        return list(self._read().keys())
