"""Tests for moodvault.daemon.service — PID file helpers."""

import os
from pathlib import Path

from moodvault.daemon.service import (
    get_pid_path,
    is_process_running,
    read_pid,
    remove_pid,
    write_pid,
)


def test_pid_round_trip(tmp_path: Path):
    assert read_pid(tmp_path) is None
    write_pid(tmp_path)
    assert get_pid_path(tmp_path).exists()
    assert read_pid(tmp_path) == os.getpid()
    assert is_process_running(os.getpid())
    remove_pid(tmp_path)
    assert read_pid(tmp_path) is None


def test_garbage_pid_file(tmp_path: Path):
    path = get_pid_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text("not a pid", encoding="utf-8")
    assert read_pid(tmp_path) is None
