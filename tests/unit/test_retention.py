"""Tests for moodvault.core.retention — RetentionManager."""

import pytest

from conftest import FakeBackend
from moodvault.core.retention import RetentionManager


def _backend_with(n: int) -> tuple[FakeBackend, list[str]]:
    backend = FakeBackend()
    names = [backend.add_blob(b"{}") for _ in range(n)]
    return backend, names


class TestPrune:
    def test_seven_blobs_keep_five_deletes_two_oldest(self):
        backend, names = _backend_with(7)
        result = RetentionManager(backend).prune(keep=5)
        assert sorted(b.id for b in result.deleted) == sorted(names[:2])
        assert set(backend.blobs) == set(names[2:])
        assert result.success

    @pytest.mark.parametrize("n", [0, 1, 4, 5, 6, 12])
    def test_retention_bound(self, n):
        backend, names = _backend_with(n)
        RetentionManager(backend).prune(keep=5)
        assert len(backend.blobs) == min(n, 5)
        assert set(backend.blobs) == set(names[-5:] if n else [])

    def test_plan_does_not_delete(self):
        backend, names = _backend_with(6)
        kept, doomed = RetentionManager(backend).plan(keep=5)
        assert [b.id for b in doomed] == [names[0]]
        assert len(kept) == 5
        assert len(backend.blobs) == 6

    def test_invalid_keep(self):
        backend, _ = _backend_with(2)
        with pytest.raises(ValueError):
            RetentionManager(backend).prune(keep=0)

    def test_delete_failure_reported(self, monkeypatch):
        backend, names = _backend_with(6)
        monkeypatch.setattr(backend, "delete", lambda blob_id: False)
        result = RetentionManager(backend).prune(keep=5)
        assert result.deleted == []
        assert len(result.errors) == 1
        assert not result.success
