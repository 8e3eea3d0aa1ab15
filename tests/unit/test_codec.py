"""Tests for moodvault.snapshot.codec."""

import json
from datetime import date, datetime, timezone

import pytest

from conftest import T0, make_goal, make_mood
from moodvault.core.errors import FormatError, IncompleteManifestError
from moodvault.core.models import (
    ChunkManifest,
    CorrelationRecord,
    GoalType,
    Segment,
    Snapshot,
)
from moodvault.snapshot.codec import chunk, decode, encode, reconstruct, snapshot_to_dict


def _snapshot() -> Snapshot:
    return Snapshot(
        created_at=T0,
        mood_entries=[
            make_mood(date(2024, 1, 1), Segment.MORNING, 5.0, "ok"),
            make_mood(date(2024, 1, 1), Segment.EVENING, 7.5, "better"),
            make_mood(date(2024, 1, 2), Segment.MIDDAY, 3.0),
        ],
        goals=[make_goal("g1"), make_goal("g2", "Streak")],
        correlation_entries=[
            CorrelationRecord(
                date=date(2024, 1, 1),
                weather="sunny",
                temperature=21.5,
                sleep_quality=7.0,
                custom_tags=("work", "gym"),
            ),
        ],
        notification_settings={"enabled": True},
        user_preferences={"theme": "dark"},
        saved_analyses=[{"id": "a1", "text": "insight"}],
    )


class TestRoundTrip:
    def test_moods_and_goals_survive(self):
        original = _snapshot()
        decoded = decode(encode(original))
        assert decoded.mood_entries == original.mood_entries
        assert decoded.goals == original.goals

    def test_everything_else_survives(self):
        original = _snapshot()
        decoded = decode(encode(original))
        assert decoded.correlation_entries == original.correlation_entries
        assert decoded.notification_settings == {"enabled": True}
        assert decoded.user_preferences == {"theme": "dark"}
        assert decoded.saved_analyses == ({"id": "a1", "text": "insight"},)
        assert decoded.created_at == T0

    def test_unicode_note(self):
        original = Snapshot(created_at=T0, mood_entries=[make_mood(note="très bien ☀")])
        assert decode(encode(original)).mood_entries[0].note == "très bien ☀"

    def test_wire_layout(self):
        data = snapshot_to_dict(_snapshot())
        assert data["schemaVersion"] == 2
        mood = data["moodEntries"][0]
        assert mood["segment"] == "Morning"
        assert set(mood) == {"date", "segment", "rating", "note", "loggedAt", "lastModified"}
        assert data["goals"][0]["type"] == "averageMood"


class TestDecodeLenient:
    def test_missing_optional_fields(self):
        raw = {
            "schemaVersion": 2,
            "moodEntries": [
                {"date": "2024-01-01", "segment": "Midday", "rating": 6, "loggedAt": "2024-01-01T12:00:00Z"},
            ],
        }
        snap = decode(json.dumps(raw))
        mood = snap.mood_entries[0]
        assert mood.note == ""
        assert mood.last_modified == mood.logged_at
        assert snap.goals == ()
        assert snap.notification_settings is None

    def test_malformed_record_skipped(self):
        raw = {
            "schemaVersion": 2,
            "moodEntries": [
                {"date": "2024-01-01", "segment": 0, "rating": 6, "loggedAt": "2024-01-01T08:00:00"},
                {"date": "not a date", "segment": 0, "rating": 6, "loggedAt": "x"},
                {"date": "2024-01-02", "segment": 0, "rating": 42, "loggedAt": "2024-01-02T08:00:00"},
                "garbage",
            ],
        }
        snap = decode(json.dumps(raw).encode("utf-8"))
        assert len(snap.mood_entries) == 1

    def test_duplicates_keep_first(self):
        raw = {
            "schemaVersion": 2,
            "goals": [
                {"id": "g1", "type": "minimumMood", "createdDate": "2024-01-01T00:00:00Z", "title": "first"},
                {"id": "g1", "type": "minimumMood", "createdDate": "2024-01-01T00:00:00Z", "title": "second"},
            ],
        }
        snap = decode(json.dumps(raw))
        assert len(snap.goals) == 1
        assert snap.goals[0].title == "first"

    def test_legacy_version_one(self):
        raw = {
            "appVersion": "1.0.0",
            "exportDate": "2023-06-01T10:00:00.000",
            "moodEntries": [
                {"date": "2023-05-31T00:00:00.000", "segment": 2, "rating": 8.0,
                 "note": "", "loggedAt": "2023-05-31T21:00:00.000"},
            ],
            "goals": [
                {"id": "1685", "type": "GoalType.consecutiveDays", "targetValue": 7.0,
                 "targetDays": 5, "createdDate": "2023-05-01T00:00:00.000"},
            ],
        }
        snap = decode(json.dumps(raw))
        assert snap.schema_version == 1
        assert snap.created_at == datetime(2023, 6, 1, 10, 0, tzinfo=timezone.utc)
        assert snap.mood_entries[0].segment == Segment.EVENING
        assert snap.mood_entries[0].date == date(2023, 5, 31)
        assert snap.goals[0].type == GoalType.CONSECUTIVE_DAYS

    def test_unknown_goal_type_falls_back(self):
        raw = {"goals": [{"id": "x", "type": "GoalType.somethingNew", "createdDate": "2024-01-01"}]}
        assert decode(json.dumps(raw)).goals[0].type == GoalType.AVERAGE_MOOD


class TestDecodeErrors:
    def test_invalid_json(self):
        with pytest.raises(FormatError):
            decode(b"{not json")

    def test_non_object_root(self):
        with pytest.raises(FormatError):
            decode("[1, 2, 3]")

    def test_unknown_schema_version(self):
        with pytest.raises(FormatError):
            decode(json.dumps({"schemaVersion": 99}))

    def test_non_integer_schema_version(self):
        with pytest.raises(FormatError):
            decode(json.dumps({"schemaVersion": "2"}))

    def test_invalid_utf8(self):
        with pytest.raises(FormatError):
            decode(b"\xff\xfe\x00")


class TestChunking:
    @pytest.mark.parametrize("size", [1, 7, 64, 1000, 10_000])
    def test_reconstruct_inverts_chunk(self, size):
        data = encode(_snapshot())
        manifest = chunk(data, size)
        assert all(len(c) <= size for c in manifest.chunks.values())
        assert reconstruct(manifest) == data

    def test_chunk_count(self):
        manifest = chunk(b"abcdefghij", 3)
        assert manifest.chunk_count == 4
        assert manifest.chunks[3] == b"j"
        assert manifest.total_size == 10

    def test_empty_input(self):
        manifest = chunk(b"", 5)
        assert manifest.chunk_count == 1
        assert reconstruct(manifest) == b""

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk(b"abc", 0)

    def test_removing_any_chunk_fails(self):
        data = encode(_snapshot())
        manifest = chunk(data, 50)
        for index in range(manifest.chunk_count):
            partial = dict(manifest.chunks)
            del partial[index]
            with pytest.raises(IncompleteManifestError) as exc:
                reconstruct(ChunkManifest(manifest.chunk_count, partial, manifest.total_size))
            assert exc.value.missing == [index]

    def test_size_mismatch_fails(self):
        manifest = chunk(b"abcdef", 3)
        manifest.chunks[1] = b"d"
        with pytest.raises(IncompleteManifestError):
            reconstruct(manifest)

    def test_zero_count_fails(self):
        with pytest.raises(IncompleteManifestError):
            reconstruct(ChunkManifest(chunk_count=0))
