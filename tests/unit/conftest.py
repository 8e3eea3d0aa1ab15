"""Shared fixtures: an in-memory backend and sample records."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from moodvault.core.models import (
    BackupBlobDescriptor,
    GoalRecord,
    GoalType,
    MoodEntryRecord,
    Result,
    Segment,
)
from moodvault.core.store import MemoryStore
from moodvault.providers.backup.base import BackendInfo, make_blob_name, order_newest_first

T0 = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)


class FakeBackend:
    """Backend keeping blobs in a dict. Each upload is one second newer."""

    def __init__(self, available: bool = True, max_blob_size: int | None = None) -> None:
        self.blobs: dict[str, bytes] = {}
        self.available = available
        self.fail_upload: str | None = None
        self.max_blob_size = max_blob_size
        self.deleted: list[str] = []
        self.uploads = 0
        self._clock = T0

    @property
    def name(self) -> str:
        return "fake"

    @property
    def info(self) -> BackendInfo:
        return BackendInfo(
            display_name="Fake",
            version="0",
            requires_auth=False,
            max_blob_size=self.max_blob_size,
        )

    def is_available(self) -> bool:
        return self.available

    def add_blob(self, data: bytes, hint: str = "moodvault_backup") -> str:
        self._clock += timedelta(seconds=1)
        name = make_blob_name(hint, self._clock)
        self.blobs[name] = data
        return name

    def upload(self, data: bytes, name_hint: str) -> Result:
        if self.fail_upload:
            return Result.fail(self.fail_upload)
        self.uploads += 1
        return Result.ok("uploaded", value=self.add_blob(data, name_hint))

    def list(self) -> list[BackupBlobDescriptor]:
        return order_newest_first(
            [BackupBlobDescriptor(id=n, name=n, size=len(d)) for n, d in self.blobs.items()],
            trust_backend_time=False,
        )

    def download(self, blob_id: str) -> bytes:
        return self.blobs[blob_id]

    def delete(self, blob_id: str) -> bool:
        if self.blobs.pop(blob_id, None) is None:
            return False
        self.deleted.append(blob_id)
        return True

    def status(self) -> dict:
        return {"type": "Fake", "available": self.available}


def make_mood(
    day: date = date(2024, 1, 1),
    segment: Segment = Segment.MORNING,
    rating: float = 5.0,
    note: str = "",
) -> MoodEntryRecord:
    logged = datetime(day.year, day.month, day.day, 9, 30, tzinfo=timezone.utc)
    return MoodEntryRecord(
        date=day,
        segment=segment,
        rating=rating,
        note=note,
        logged_at=logged,
        last_modified=logged + timedelta(minutes=5),
    )


def make_goal(goal_id: str = "g1", title: str = "Stay above 6") -> GoalRecord:
    return GoalRecord(
        id=goal_id,
        type=GoalType.AVERAGE_MOOD,
        target_value=6.0,
        target_days=14,
        created_date=T0,
        title=title,
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
