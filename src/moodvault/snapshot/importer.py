"""Merge importer: applies a decoded Snapshot onto the local store.

Policy per category:

- moods: additive; an existing (date, segment) with a rating is never touched
- goals: additive by id
- correlation entries: overwritten by the snapshot (last import wins)
- notification settings, preferences, saved analyses: replaced wholesale
  when the snapshot carries a non-empty value

The correlation policy differs from moods/goals. It is kept for
compatibility with existing backups and is pending product review.

Writes are per entry. A failure stops the import at that category; earlier
writes stay in place and the failure is reported in ImportReport.error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from moodvault.core.errors import PartialImportError
from moodvault.core.models import ImportReport, MoodEntryRecord, Snapshot
from moodvault.core.store import (
    GOALS_KEY,
    NOTIFICATION_SETTINGS_KEY,
    SAVED_ANALYSES_KEY,
    USER_PREFERENCES_KEY,
    LocalStore,
    correlation_key,
    decode_value,
    mood_key,
)
from moodvault.snapshot.codec import correlation_to_wire, goal_to_wire

log = logging.getLogger(__name__)


def mood_to_store(entry: MoodEntryRecord) -> dict:
    """Stored form of a mood entry, keeping the original creation time."""
    return {
        "rating": entry.rating,
        "note": entry.note,
        "timestamp": entry.logged_at.isoformat(),
        "moodDate": entry.date.isoformat(),
        "lastModified": entry.last_modified.isoformat(),
    }


class MergeImporter:
    """Merge snapshots into a LocalStore without overwriting tracked moods or goals."""

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    def import_snapshot(self, snapshot: Snapshot) -> ImportReport:
        report = ImportReport()
        steps: list[tuple[str, Callable[[Snapshot, ImportReport], None]]] = [
            ("moods", self._import_moods),
            ("goals", self._import_goals),
            ("correlations", self._import_correlations),
            ("settings", self._import_settings),
        ]
        for category, step in steps:
            try:
                step(snapshot, report)
            except Exception as e:
                failure = PartialImportError(category, e)
                log.warning("%s", failure, exc_info=True)
                report.error = str(failure)
                report.failed_category = category
                break

        log.info(
            "Import finished: moods %d/%d, goals %d/%d, correlations %d%s",
            report.imported_moods, report.skipped_moods,
            report.imported_goals, report.skipped_goals,
            report.imported_correlations,
            f" (error: {report.error})" if report.error else "",
        )
        return report

    def _import_moods(self, snapshot: Snapshot, report: ImportReport) -> None:
        for entry in snapshot.mood_entries:
            key = mood_key(entry.date, entry.segment)
            existing = decode_value(self.store.get(key))
            if isinstance(existing, dict) and existing.get("rating") is not None:
                report.skipped_moods += 1
                continue
            self.store.set(key, mood_to_store(entry))
            report.imported_moods += 1

    def _import_goals(self, snapshot: Snapshot, report: ImportReport) -> None:
        # Work on the raw stored list so goals this version cannot parse
        # are written back untouched.
        stored = decode_value(self.store.get(GOALS_KEY))
        stored = list(stored) if isinstance(stored, list) else []
        known = {item.get("id") for item in stored if isinstance(item, dict)}
        for goal in snapshot.goals:
            if goal.id in known:
                report.skipped_goals += 1
                continue
            stored.append(goal_to_wire(goal))
            known.add(goal.id)
            report.imported_goals += 1
        if report.imported_goals:
            self.store.set(GOALS_KEY, stored)

    def _import_correlations(self, snapshot: Snapshot, report: ImportReport) -> None:
        for entry in snapshot.correlation_entries:
            self.store.set(correlation_key(entry.date), correlation_to_wire(entry))
            report.imported_correlations += 1

    def _import_settings(self, snapshot: Snapshot, report: ImportReport) -> None:
        if snapshot.notification_settings:
            self.store.set(NOTIFICATION_SETTINGS_KEY, dict(snapshot.notification_settings))
        if snapshot.user_preferences:
            self.store.set(USER_PREFERENCES_KEY, dict(snapshot.user_preferences))
        if snapshot.saved_analyses:
            self.store.set(SAVED_ANALYSES_KEY, list(snapshot.saved_analyses))
