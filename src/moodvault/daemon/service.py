"""PID file handling for the backup daemon."""

from __future__ import annotations

import contextlib
import logging
import os
import platform
import subprocess
from pathlib import Path

log = logging.getLogger(__name__)


def get_pid_path(home: Path) -> Path:
    return home / ".mv" / "daemon.pid"


def write_pid(home: Path) -> None:
    """Write current process PID to the PID file."""
    pid_path = get_pid_path(home)
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(str(os.getpid()), encoding="utf-8")


def read_pid(home: Path) -> int | None:
    """Read the daemon PID. Returns None if missing or unreadable."""
    pid_path = get_pid_path(home)
    if not pid_path.exists():
        return None
    try:
        return int(pid_path.read_text(encoding="utf-8").strip())
    except (ValueError, OSError):
        return None


def remove_pid(home: Path) -> None:
    pid_path = get_pid_path(home)
    if pid_path.exists():
        with contextlib.suppress(OSError):
            pid_path.unlink()


def is_process_running(pid: int) -> bool:
    if platform.system() == "Windows":
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"PID eq {pid}", "/NH"],
                capture_output=True, text=True, timeout=5,
            )
            return str(pid) in result.stdout
        except (subprocess.SubprocessError, OSError):
            return False
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False
