"""Configuration loader for MoodVault."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

log = logging.getLogger(__name__)

DEFAULTS: dict = {
    "home": "~/moodvault",
    "log_level": "info",
    "store": {
        # None -> <home>/.mv/store.json
        "path": None,
    },
    "snapshot": {
        "history_days": 1095,
    },
    "backup": {
        # auto | drive | cloud
        "backend": "auto",
        "auto_enabled": True,
        "interval_hours": 24,
        "debounce_seconds": 30,
        "timeout_seconds": 20,
        "keep": 5,
        "evaluation_minutes": 60,
        "name_prefix": "moodvault_backup",
    },
    "drive": {
        "folder_name": "MoodVault_Backups",
        "client_secrets": "~/.config/moodvault/client_secret.json",
        "credential": "keyring",
    },
    "cloud": {
        "container_path": "~/Library/Mobile Documents/iCloud~com~moodvault~app/Documents",
        "folder": "MoodVault_Backups",
        "staging_dir": None,
        "platforms": ["Darwin"],
    },
    "bridge": {
        "enabled": False,
        "chunk_size": 750_000,
        "request_command": [],
    },
    "restore": {
        "check_interval_hours": 24,
    },
}


def resolve_home() -> Path:
    """Resolve MV_HOME: env var > default ~/moodvault."""
    env_home = os.environ.get("MV_HOME")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return Path("~/moodvault").expanduser().resolve()


def config_path(home: Path | None = None) -> Path:
    """Return the path to config.yaml."""
    if home is None:
        home = resolve_home()
    return home / ".mv" / "config.yaml"


def store_path(config: dict) -> Path:
    """Return the local store file, defaulting to <home>/.mv/store.json."""
    explicit = config.get("store", {}).get("path")
    if explicit:
        return Path(explicit).expanduser()
    return Path(config["home"]) / ".mv" / "store.json"


def load_config(path: Path | None = None) -> dict:
    """Load config.yaml and merge with defaults.

    Args:
        path: Explicit path to config.yaml. If None, uses default location.

    Returns:
        Merged configuration dict.
    """
    if path is None:
        path = config_path()

    user_config: dict = {}
    if path.exists():
        try:
            raw = path.read_text(encoding="utf-8")
            user_config = yaml.safe_load(raw) or {}
            if not isinstance(user_config, dict):
                log.warning("Config at %s is not a mapping, using defaults", path)
                user_config = {}
        except Exception:
            log.warning("Failed to read config at %s, using defaults", path, exc_info=True)

    merged = _deep_merge(DEFAULTS, user_config)

    home_str = os.environ.get("MV_HOME") or merged.get("home", "~/moodvault")
    merged["home"] = str(Path(home_str).expanduser().resolve())

    return merged


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
