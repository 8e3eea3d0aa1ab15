"""Core data models for MoodVault."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum

RATING_MIN = 1.0
RATING_MAX = 10.0

SCHEMA_VERSION = 2


# --- Enums ---


class Segment(int, Enum):
    """One of the three fixed daily time windows."""

    MORNING = 0
    MIDDAY = 1
    EVENING = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def parse(cls, value: object) -> Segment:
        """Accept an index (0-2), a label ('Morning') or an enum name."""
        if isinstance(value, Segment):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid segment: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                pass
        raise ValueError(f"Invalid segment: {value!r}")


class GoalType(str, Enum):
    AVERAGE_MOOD = "averageMood"
    CONSECUTIVE_DAYS = "consecutiveDays"
    MINIMUM_MOOD = "minimumMood"
    IMPROVEMENT_STREAK = "improvementStreak"

    @classmethod
    def parse(cls, value: object) -> GoalType:
        """Parse 'averageMood' or the legacy 'GoalType.averageMood' form.

        Unknown values fall back to AVERAGE_MOOD.
        """
        if isinstance(value, GoalType):
            return value
        text = str(value or "")
        if text.startswith("GoalType."):
            text = text[len("GoalType."):]
        for member in cls:
            if member.value == text or member.name == text:
                return member
        return cls.AVERAGE_MOOD


# --- Helpers ---


def _now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: object) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_optional_datetime(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    return parse_datetime(value)


def parse_day(value: object) -> date:
    """Parse a calendar day from 'YYYY-MM-DD' or a full ISO timestamp."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        return date.fromisoformat(value[:10])
    raise ValueError(f"Invalid date: {value!r}")


def start_of_day(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


# --- Tracked records ---


@dataclass(frozen=True)
class MoodEntryRecord:
    """A single mood rating, identified by (date, segment)."""

    date: date
    segment: Segment
    rating: float
    logged_at: datetime
    last_modified: datetime
    note: str = ""

    def __post_init__(self) -> None:
        if not RATING_MIN <= self.rating <= RATING_MAX:
            raise ValueError(
                f"Rating {self.rating} outside {RATING_MIN:g}..{RATING_MAX:g}"
            )
        if self.logged_at > self.last_modified:
            raise ValueError("logged_at must not be later than last_modified")

    @property
    def key(self) -> tuple[date, Segment]:
        return (self.date, self.segment)


@dataclass(frozen=True)
class GoalRecord:
    """A user goal such as 'keep a 7+ average for 14 days'."""

    id: str
    type: GoalType
    target_value: float
    target_days: int
    created_date: datetime
    title: str = ""
    description: str = ""
    completed_date: datetime | None = None
    is_completed: bool = False


@dataclass(frozen=True)
class CorrelationRecord:
    """Per-day context (weather, sleep, activity, stress) for correlations."""

    date: date
    weather: str | None = None
    temperature: float | None = None
    weather_description: str | None = None
    sleep_quality: float | None = None
    sleep_duration_minutes: int | None = None
    bedtime: datetime | None = None
    wake_time: datetime | None = None
    exercise_level: str | None = None
    social_activity: str | None = None
    work_stress: int | None = None
    custom_tags: tuple[str, ...] = ()
    notes: str | None = None
    auto_weather: bool = False
    weather_data: dict | None = None
    hobby_activity: str | None = None


@dataclass(frozen=True)
class Snapshot:
    """Immutable point-in-time export of all tracked records."""

    created_at: datetime = field(default_factory=_now)
    mood_entries: tuple[MoodEntryRecord, ...] = ()
    goals: tuple[GoalRecord, ...] = ()
    correlation_entries: tuple[CorrelationRecord, ...] = ()
    notification_settings: dict | None = None
    user_preferences: dict | None = None
    saved_analyses: tuple[dict, ...] = ()
    schema_version: int = SCHEMA_VERSION

    def __post_init__(self) -> None:
        for name in ("mood_entries", "goals", "correlation_entries", "saved_analyses"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

        _require_unique("mood entry", [m.key for m in self.mood_entries])
        _require_unique("goal", [g.id for g in self.goals])
        _require_unique("correlation entry", [c.date for c in self.correlation_entries])

    @property
    def is_empty(self) -> bool:
        return not (self.mood_entries or self.goals or self.correlation_entries)


def _require_unique(kind: str, keys: list) -> None:
    seen = set()
    for k in keys:
        if k in seen:
            raise ValueError(f"Duplicate {kind} in snapshot: {k!r}")
        seen.add(k)


@dataclass
class ExportFilters:
    """Categories included in a partial export."""

    moods: bool = True
    weather: bool = True
    sleep: bool = True
    activity: bool = True
    correlations: bool = True

    @property
    def any_correlation(self) -> bool:
        return self.weather or self.sleep or self.activity or self.correlations


# --- Backup engine models ---


@dataclass
class ImportReport:
    """Outcome of merging a snapshot into the local store."""

    imported_moods: int = 0
    skipped_moods: int = 0
    imported_goals: int = 0
    skipped_goals: int = 0
    imported_correlations: int = 0
    error: str | None = None
    failed_category: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def summary(self) -> str:
        return (
            f"Imported {self.imported_moods} moods and {self.imported_goals} goals "
            f"(skipped {self.skipped_moods} moods, {self.skipped_goals} goals)"
        )


@dataclass(frozen=True)
class BackupBlobDescriptor:
    """A backup blob as reported by a backend."""

    id: str
    name: str
    created_at: datetime | None = None
    size: int | None = None


@dataclass
class ChunkManifest:
    """A size-bounded split of an encoded snapshot.

    ``chunks`` maps index -> bytes; every index in ``range(chunk_count)``
    must be present for the manifest to be reconstructable.
    """

    chunk_count: int
    chunks: dict[int, bytes] = field(default_factory=dict)
    total_size: int | None = None

    def missing(self) -> list[int]:
        return [i for i in range(self.chunk_count) if i not in self.chunks]


@dataclass
class BackupState:
    """Persisted auto-backup settings and bookkeeping."""

    last_successful_backup_at: datetime | None = None
    auto_backup_enabled: bool = True
    interval_hours: int = 24


@dataclass
class Result:
    """Uniform outcome object returned across the backup/restore boundary."""

    success: bool
    message: str | None = None
    error: str | None = None
    value: object = None
    timestamp: datetime = field(default_factory=_now)

    @classmethod
    def ok(cls, message: str | None = None, value: object = None) -> Result:
        return cls(success=True, message=message, value=value)

    @classmethod
    def fail(cls, error: str) -> Result:
        return cls(success=False, error=error)
