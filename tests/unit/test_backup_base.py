"""Tests for moodvault.providers.backup.base."""

import time
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeBackend
from moodvault.core.errors import BackupTimeoutError
from moodvault.core.models import BackupBlobDescriptor
from moodvault.providers.backup.base import (
    BackupBackend,
    call_with_timeout,
    format_size,
    make_blob_name,
    matches_prefix,
    order_newest_first,
    parse_name_epoch,
)

T = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestBlobNames:
    def test_make_blob_name(self):
        name = make_blob_name("moodvault_backup", T)
        assert name == f"moodvault_backup_{int(T.timestamp() * 1000)}.json"

    def test_parse_name_epoch(self):
        assert parse_name_epoch(make_blob_name("x", T)) == T

    def test_parse_name_epoch_legacy_prefix(self):
        assert parse_name_epoch("moodflow_backup_1700000000000.json") == datetime(
            2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc,
        )

    def test_parse_name_epoch_missing(self):
        assert parse_name_epoch("notes.json") is None

    def test_matches_prefix(self):
        assert matches_prefix("moodvault_backup_1.json", "moodvault_backup")
        assert not matches_prefix("other_1.json", "moodvault_backup")
        assert not matches_prefix("moodvault_backup_1.txt", "moodvault_backup")


class TestOrdering:
    def _blob(self, offset: int, created=None) -> BackupBlobDescriptor:
        name = make_blob_name("b", T + timedelta(hours=offset))
        return BackupBlobDescriptor(id=name, name=name, created_at=created)

    def test_name_epoch_fallback(self):
        blobs = [self._blob(1), self._blob(3), self._blob(2)]
        ordered = order_newest_first(blobs)
        assert ordered == [blobs[1], blobs[2], blobs[0]]

    def test_backend_time_preferred(self):
        a = self._blob(1, created=T + timedelta(days=10))
        b = self._blob(5, created=T)
        assert order_newest_first([b, a]) == [a, b]

    def test_backend_time_ignored_when_untrusted(self):
        a = self._blob(1, created=T + timedelta(days=10))
        b = self._blob(5, created=T)
        assert order_newest_first([a, b], trust_backend_time=False) == [b, a]

    def test_undated_sorts_last(self):
        dated = self._blob(1)
        undated = BackupBlobDescriptor(id="x", name="x.json")
        assert order_newest_first([undated, dated]) == [dated, undated]


class TestCallWithTimeout:
    def test_returns_value(self):
        assert call_with_timeout(lambda: 42, 1.0, "test") == 42

    def test_times_out(self):
        with pytest.raises(BackupTimeoutError):
            call_with_timeout(lambda: time.sleep(1.0), 0.05, "slow")

    def test_propagates_errors(self):
        def fail():
            raise OSError("disk")

        with pytest.raises(OSError):
            call_with_timeout(fail, 1.0, "failing")


class TestMisc:
    def test_format_size(self):
        assert format_size(None) == "unknown size"
        assert format_size(512) == "512 B"
        assert format_size(2048) == "2.0 KB"

    def test_fake_backend_satisfies_protocol(self):
        assert isinstance(FakeBackend(), BackupBackend)
