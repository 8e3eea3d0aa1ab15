"""Snapshot builder: reads the local store and assembles a Snapshot."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta

from moodvault.core.models import (
    CorrelationRecord,
    ExportFilters,
    GoalRecord,
    MoodEntryRecord,
    Segment,
    Snapshot,
    _now,
    parse_optional_datetime,
    start_of_day,
)
from moodvault.core.store import (
    GOALS_KEY,
    NOTIFICATION_SETTINGS_KEY,
    SAVED_ANALYSES_KEY,
    USER_PREFERENCES_KEY,
    LocalStore,
    decode_value,
    parse_correlation_key,
    parse_mood_key,
)
from moodvault.snapshot.codec import correlation_from_wire, goal_from_wire

log = logging.getLogger(__name__)

DEFAULT_HISTORY_DAYS = 1095


def mood_from_store(day: date, segment: Segment, value: object) -> MoodEntryRecord | None:
    """Convert a stored mood value to a record. None if it has no rating."""
    data = decode_value(value)
    if not isinstance(data, dict) or data.get("rating") is None:
        return None
    logged_at = parse_optional_datetime(data.get("timestamp")) or start_of_day(day)
    last_modified = parse_optional_datetime(data.get("lastModified")) or logged_at
    if last_modified < logged_at:
        last_modified = logged_at
    return MoodEntryRecord(
        date=day,
        segment=segment,
        rating=float(data["rating"]),
        note=data.get("note") or "",
        logged_at=logged_at,
        last_modified=last_modified,
    )


def load_goals(store: LocalStore) -> list[GoalRecord]:
    raw = decode_value(store.get(GOALS_KEY))
    if not isinstance(raw, list):
        return []
    goals = []
    seen: set[str] = set()
    for item in raw:
        try:
            goal = goal_from_wire(item)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Skipping malformed stored goal: %s", e)
            continue
        if goal.id in seen:
            continue
        seen.add(goal.id)
        goals.append(goal)
    return goals


class SnapshotBuilder:
    """Build snapshots of everything tracked in a LocalStore."""

    def __init__(
        self,
        store: LocalStore,
        history_days: int = DEFAULT_HISTORY_DAYS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.history_days = history_days
        self._clock = clock or _now

    def _window(self) -> tuple[date, date]:
        today = self._clock().date()
        return today - timedelta(days=self.history_days), today

    def export_all(self) -> Snapshot:
        """Export the full history window, goals, settings and analyses."""
        start, end = self._window()
        keys = self.store.keys()
        return Snapshot(
            created_at=self._clock(),
            mood_entries=self._collect_moods(keys, start, end),
            goals=load_goals(self.store),
            correlation_entries=self._collect_correlations(keys, start, end),
            notification_settings=self._mapping(NOTIFICATION_SETTINGS_KEY),
            user_preferences=self._mapping(USER_PREFERENCES_KEY),
            saved_analyses=self._analyses(),
        )

    def export_selected(
        self,
        filters: ExportFilters | None = None,
        date_range: tuple[date | None, date | None] | None = None,
    ) -> Snapshot:
        """Partial export for sharing. Goals are always included; settings,
        preferences and saved analyses never are.
        """
        filters = filters or ExportFilters()
        start, end = self._window()
        if date_range is not None:
            if date_range[0] is not None:
                start = date_range[0]
            if date_range[1] is not None:
                end = date_range[1]
        if start > end:
            raise ValueError(f"Export range start {start} is after end {end}")

        keys = self.store.keys()
        moods = self._collect_moods(keys, start, end) if filters.moods else []
        correlations = []
        if filters.any_correlation:
            correlations = [
                _filter_correlation(c, filters)
                for c in self._collect_correlations(keys, start, end)
            ]

        return Snapshot(
            created_at=self._clock(),
            mood_entries=moods,
            goals=load_goals(self.store),
            correlation_entries=correlations,
        )

    def _collect_moods(self, keys: list[str], start: date, end: date) -> list[MoodEntryRecord]:
        found = []
        for key in keys:
            parsed = parse_mood_key(key)
            if parsed is None:
                continue
            day, segment = parsed
            if not start <= day <= end:
                continue
            try:
                record = mood_from_store(day, segment, self.store.get(key))
            except (TypeError, ValueError) as e:
                log.warning("Skipping unreadable mood %s: %s", key, e)
                continue
            if record is not None:
                found.append(record)
        found.sort(key=lambda m: (m.date, m.segment))
        return found

    def _collect_correlations(
        self, keys: list[str], start: date, end: date,
    ) -> list[CorrelationRecord]:
        found = []
        for key in keys:
            day = parse_correlation_key(key)
            if day is None or not start <= day <= end:
                continue
            data = decode_value(self.store.get(key))
            if not isinstance(data, dict):
                continue
            try:
                found.append(correlation_from_wire({**data, "date": day.isoformat()}))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Skipping unreadable correlation %s: %s", key, e)
        found.sort(key=lambda c: c.date)
        return found

    def _mapping(self, key: str) -> dict | None:
        value = decode_value(self.store.get(key))
        return dict(value) if isinstance(value, dict) and value else None

    def _analyses(self) -> list[dict]:
        value = decode_value(self.store.get(SAVED_ANALYSES_KEY))
        if not isinstance(value, list):
            return []
        return [a for a in value if isinstance(a, dict)]


def _filter_correlation(entry: CorrelationRecord, filters: ExportFilters) -> CorrelationRecord:
    changes: dict = {}
    if not filters.weather:
        changes.update(
            weather=None, temperature=None, weather_description=None,
            auto_weather=False, weather_data=None,
        )
    if not filters.sleep:
        changes.update(
            sleep_quality=None, sleep_duration_minutes=None, bedtime=None, wake_time=None,
        )
    if not filters.activity:
        changes.update(exercise_level=None, social_activity=None, hobby_activity=None)
    if not filters.correlations:
        changes.update(work_stress=None, custom_tags=(), notes=None)
    return dataclasses.replace(entry, **changes) if changes else entry
