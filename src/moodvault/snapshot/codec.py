"""Snapshot wire codec and chunking.

Wire format: one UTF-8 JSON object. Version 2 is written; version 1
(exports without ``schemaVersion`` carrying ``appVersion``/``exportDate``,
integer segments and ``GoalType.x`` goal types) is still read.

Decoding is lenient: missing optional fields take defaults and malformed
individual records are skipped with a warning. Only an unparsable root or
an unknown ``schemaVersion`` raises FormatError.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable

from moodvault.core.errors import FormatError, IncompleteManifestError
from moodvault.core.models import (
    SCHEMA_VERSION,
    ChunkManifest,
    CorrelationRecord,
    GoalRecord,
    GoalType,
    MoodEntryRecord,
    Segment,
    Snapshot,
    _now,
    parse_datetime,
    parse_day,
    parse_optional_datetime,
)

log = logging.getLogger(__name__)

SUPPORTED_VERSIONS = frozenset({1, 2})
LEGACY_APP_VERSION = "1.0.0"


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


# --- Records ---


def mood_to_wire(entry: MoodEntryRecord) -> dict:
    return {
        "date": entry.date.isoformat(),
        "segment": entry.segment.label,
        "rating": entry.rating,
        "note": entry.note,
        "loggedAt": entry.logged_at.isoformat(),
        "lastModified": entry.last_modified.isoformat(),
    }


def mood_from_wire(data: dict) -> MoodEntryRecord:
    day = parse_day(data["date"])
    logged_at = parse_datetime(data["loggedAt"])
    last_modified = parse_optional_datetime(data.get("lastModified")) or logged_at
    if last_modified < logged_at:
        last_modified = logged_at
    return MoodEntryRecord(
        date=day,
        segment=Segment.parse(data["segment"]),
        rating=float(data["rating"]),
        note=data.get("note") or "",
        logged_at=logged_at,
        last_modified=last_modified,
    )


def goal_to_wire(goal: GoalRecord) -> dict:
    return {
        "id": goal.id,
        "title": goal.title,
        "description": goal.description,
        "type": goal.type.value,
        "targetValue": goal.target_value,
        "targetDays": goal.target_days,
        "createdDate": goal.created_date.isoformat(),
        "completedDate": _iso(goal.completed_date),
        "isCompleted": goal.is_completed,
    }


def goal_from_wire(data: dict) -> GoalRecord:
    goal_id = data["id"]
    if not isinstance(goal_id, str) or not goal_id:
        raise ValueError(f"Invalid goal id: {goal_id!r}")
    return GoalRecord(
        id=goal_id,
        type=GoalType.parse(data.get("type")),
        target_value=float(data.get("targetValue", 0.0)),
        target_days=int(data.get("targetDays", 0)),
        created_date=parse_datetime(data["createdDate"]),
        title=data.get("title") or "",
        description=data.get("description") or "",
        completed_date=parse_optional_datetime(data.get("completedDate")),
        is_completed=bool(data.get("isCompleted", False)),
    )


def correlation_to_wire(entry: CorrelationRecord) -> dict:
    return {
        "date": entry.date.isoformat(),
        "weather": entry.weather,
        "temperature": entry.temperature,
        "weatherDescription": entry.weather_description,
        "sleepQuality": entry.sleep_quality,
        "sleepDurationMinutes": entry.sleep_duration_minutes,
        "bedtime": _iso(entry.bedtime),
        "wakeTime": _iso(entry.wake_time),
        "exerciseLevel": entry.exercise_level,
        "socialActivity": entry.social_activity,
        "workStress": entry.work_stress,
        "customTags": list(entry.custom_tags),
        "notes": entry.notes,
        "autoWeather": entry.auto_weather,
        "weatherData": entry.weather_data,
        "hobbyActivity": entry.hobby_activity,
    }


def _optional_float(value) -> float | None:
    return float(value) if value is not None else None


def _optional_int(value) -> int | None:
    return int(value) if value is not None else None


def correlation_from_wire(data: dict) -> CorrelationRecord:
    return CorrelationRecord(
        date=parse_day(data["date"]),
        weather=data.get("weather"),
        temperature=_optional_float(data.get("temperature")),
        weather_description=data.get("weatherDescription"),
        sleep_quality=_optional_float(data.get("sleepQuality")),
        sleep_duration_minutes=_optional_int(data.get("sleepDurationMinutes")),
        bedtime=parse_optional_datetime(data.get("bedtime")),
        wake_time=parse_optional_datetime(data.get("wakeTime")),
        exercise_level=data.get("exerciseLevel"),
        social_activity=data.get("socialActivity"),
        work_stress=_optional_int(data.get("workStress")),
        custom_tags=tuple(data.get("customTags") or ()),
        notes=data.get("notes"),
        auto_weather=bool(data.get("autoWeather", False)),
        weather_data=data.get("weatherData"),
        hobby_activity=data.get("hobbyActivity"),
    )


# --- Snapshot ---


def snapshot_to_dict(snapshot: Snapshot) -> dict:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "createdAt": snapshot.created_at.isoformat(),
        "moodEntries": [mood_to_wire(m) for m in snapshot.mood_entries],
        "goals": [goal_to_wire(g) for g in snapshot.goals],
        "correlationEntries": [correlation_to_wire(c) for c in snapshot.correlation_entries],
        "notificationSettings": snapshot.notification_settings,
        "userPreferences": snapshot.user_preferences,
        "savedAnalyses": list(snapshot.saved_analyses),
    }


def encode(snapshot: Snapshot) -> bytes:
    """Serialize a snapshot to UTF-8 JSON bytes."""
    return json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False).encode("utf-8")


def _schema_version(root: dict) -> int:
    raw = root.get("schemaVersion")
    if raw is None:
        # Exports written before versioning carried only appVersion.
        return 1
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise FormatError(f"Invalid schemaVersion: {raw!r}")
    if raw not in SUPPORTED_VERSIONS:
        raise FormatError(f"Unsupported snapshot schemaVersion {raw}")
    return raw


def _records(root: dict, key: str, parse: Callable[[dict], object], identity: Callable) -> list:
    raw = root.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        log.warning("Snapshot field %s is not a list, ignoring", key)
        return []

    records = []
    seen = set()
    for i, item in enumerate(raw):
        try:
            if not isinstance(item, dict):
                raise TypeError(f"expected object, got {type(item).__name__}")
            record = parse(item)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Skipping malformed %s[%d]: %s", key, i, e)
            continue
        ident = identity(record)
        if ident in seen:
            log.warning("Skipping duplicate %s[%d]: %r", key, i, ident)
            continue
        seen.add(ident)
        records.append(record)
    return records


def _optional_mapping(root: dict, key: str) -> dict | None:
    value = root.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        log.warning("Snapshot field %s is not an object, ignoring", key)
        return None
    return value


def decode(data: bytes | str) -> Snapshot:
    """Parse snapshot bytes. Raises FormatError on unusable input."""
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        root = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FormatError(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(root, dict):
        raise FormatError("Snapshot root must be a JSON object")

    version = _schema_version(root)
    created_raw = root.get("createdAt") if version >= 2 else root.get("exportDate")
    try:
        created_at = parse_datetime(created_raw) if created_raw else _now()
    except ValueError:
        log.warning("Unparsable snapshot timestamp %r, using now", created_raw)
        created_at = _now()

    analyses = root.get("savedAnalyses") or []
    if not isinstance(analyses, list):
        analyses = []

    return Snapshot(
        schema_version=version,
        created_at=created_at,
        mood_entries=_records(root, "moodEntries", mood_from_wire, lambda m: m.key),
        goals=_records(root, "goals", goal_from_wire, lambda g: g.id),
        correlation_entries=_records(
            root, "correlationEntries", correlation_from_wire, lambda c: c.date,
        ),
        notification_settings=_optional_mapping(root, "notificationSettings"),
        user_preferences=_optional_mapping(root, "userPreferences"),
        saved_analyses=[a for a in analyses if isinstance(a, dict)],
    )


# --- Chunking ---


def chunk(data: bytes, max_size: int) -> ChunkManifest:
    """Split ``data`` into chunks of at most ``max_size`` bytes.

    Empty input yields a single empty chunk so every manifest has at
    least one index.
    """
    if max_size < 1:
        raise ValueError(f"Chunk size must be positive, got {max_size}")
    pieces = [data[i:i + max_size] for i in range(0, len(data), max_size)] or [b""]
    return ChunkManifest(
        chunk_count=len(pieces),
        chunks=dict(enumerate(pieces)),
        total_size=len(data),
    )


def reconstruct(manifest: ChunkManifest) -> bytes:
    """Reassemble a manifest. All-or-nothing: never returns partial data."""
    if manifest.chunk_count < 1:
        raise IncompleteManifestError("Manifest has no chunks")
    missing = manifest.missing()
    if missing:
        raise IncompleteManifestError(
            f"Manifest missing {len(missing)} of {manifest.chunk_count} chunks: {missing}",
            missing=missing,
        )
    data = b"".join(manifest.chunks[i] for i in range(manifest.chunk_count))
    if manifest.total_size is not None and len(data) != manifest.total_size:
        raise IncompleteManifestError(
            f"Reassembled {len(data)} bytes, expected {manifest.total_size}"
        )
    return data


def iter_chunks(manifest: ChunkManifest) -> Iterable[tuple[int, bytes]]:
    return ((i, manifest.chunks[i]) for i in sorted(manifest.chunks))
