"""Tests for moodvault.snapshot.builder — SnapshotBuilder."""

import json
from datetime import date, datetime, timezone

import pytest

from moodvault.core.models import ExportFilters, Segment
from moodvault.core.store import (
    GOALS_KEY,
    NOTIFICATION_SETTINGS_KEY,
    SAVED_ANALYSES_KEY,
    MemoryStore,
    correlation_key,
    mood_key,
)
from moodvault.snapshot.builder import SnapshotBuilder

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _clock() -> datetime:
    return NOW


def _store() -> MemoryStore:
    s = MemoryStore()
    s.set(mood_key(date(2024, 2, 1), Segment.MORNING), {
        "rating": 6.0, "note": "fine",
        "timestamp": "2024-02-01T08:00:00+00:00",
        "lastModified": "2024-02-01T09:00:00+00:00",
    })
    s.set(mood_key(date(2024, 2, 1), Segment.EVENING), {"rating": 8, "note": ""})
    # JSON text, as older app versions stored it
    s.set(mood_key(date(2024, 2, 2), Segment.MIDDAY), json.dumps({"rating": 4.5}))
    s.set(mood_key(date(2024, 2, 3), Segment.MORNING), {"rating": None})
    s.set(mood_key(date(2019, 1, 1), Segment.MORNING), {"rating": 3.0})
    s.set(correlation_key(date(2024, 2, 1)), {
        "weather": "sunny", "temperature": 12, "sleepQuality": 8, "exerciseLevel": "high",
        "workStress": 3, "customTags": ["tag"], "notes": "n",
    })
    s.set(GOALS_KEY, [{"id": "g1", "type": "averageMood", "targetValue": 7,
                       "targetDays": 10, "createdDate": "2024-01-01T00:00:00Z"}])
    s.set(NOTIFICATION_SETTINGS_KEY, {"enabled": True})
    s.set(SAVED_ANALYSES_KEY, [{"id": "a1"}, "junk"])
    s.set("unrelated", 1)
    return s


class TestExportAll:
    def test_collects_rated_moods_in_window(self):
        snap = SnapshotBuilder(_store(), clock=_clock).export_all()
        keys = [(m.date, m.segment) for m in snap.mood_entries]
        assert keys == [
            (date(2024, 2, 1), Segment.MORNING),
            (date(2024, 2, 1), Segment.EVENING),
            (date(2024, 2, 2), Segment.MIDDAY),
        ]

    def test_defaults_for_missing_timestamps(self):
        snap = SnapshotBuilder(_store(), clock=_clock).export_all()
        evening = snap.mood_entries[1]
        assert evening.logged_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert evening.last_modified == evening.logged_at

    def test_includes_goals_settings_and_analyses(self):
        snap = SnapshotBuilder(_store(), clock=_clock).export_all()
        assert [g.id for g in snap.goals] == ["g1"]
        assert snap.notification_settings == {"enabled": True}
        assert snap.user_preferences is None
        assert snap.saved_analyses == ({"id": "a1"},)
        assert snap.created_at == NOW

    def test_history_window(self):
        snap = SnapshotBuilder(_store(), history_days=30, clock=_clock).export_all()
        assert all(m.date >= date(2024, 1, 31) for m in snap.mood_entries)
        assert len(snap.mood_entries) == 3

    def test_deterministic(self):
        store = _store()
        a = SnapshotBuilder(store, clock=_clock).export_all()
        b = SnapshotBuilder(store, clock=_clock).export_all()
        assert a == b

    def test_empty_store(self):
        snap = SnapshotBuilder(MemoryStore(), clock=_clock).export_all()
        assert snap.is_empty


class TestExportSelected:
    def test_never_includes_settings(self):
        snap = SnapshotBuilder(_store(), clock=_clock).export_selected()
        assert snap.notification_settings is None
        assert snap.saved_analyses == ()
        assert len(snap.goals) == 1

    def test_without_moods(self):
        snap = SnapshotBuilder(_store(), clock=_clock).export_selected(ExportFilters(moods=False))
        assert snap.mood_entries == ()
        assert len(snap.correlation_entries) == 1

    def test_field_filters(self):
        filters = ExportFilters(weather=False, activity=False)
        snap = SnapshotBuilder(_store(), clock=_clock).export_selected(filters)
        entry = snap.correlation_entries[0]
        assert entry.weather is None
        assert entry.temperature is None
        assert entry.exercise_level is None
        assert entry.sleep_quality == 8.0
        assert entry.work_stress == 3

    def test_no_correlation_categories(self):
        filters = ExportFilters(weather=False, sleep=False, activity=False, correlations=False)
        snap = SnapshotBuilder(_store(), clock=_clock).export_selected(filters)
        assert snap.correlation_entries == ()

    def test_date_range(self):
        snap = SnapshotBuilder(_store(), clock=_clock).export_selected(
            date_range=(date(2024, 2, 2), None),
        )
        assert [m.date for m in snap.mood_entries] == [date(2024, 2, 2)]
        assert snap.correlation_entries == ()

    def test_range_reaches_past_history_window(self):
        snap = SnapshotBuilder(_store(), history_days=10, clock=_clock).export_selected(
            date_range=(date(2019, 1, 1), date(2019, 1, 1)),
        )
        assert len(snap.mood_entries) == 1

    def test_inverted_range(self):
        with pytest.raises(ValueError):
            SnapshotBuilder(_store(), clock=_clock).export_selected(
                date_range=(date(2024, 3, 1), date(2024, 1, 1)),
            )
