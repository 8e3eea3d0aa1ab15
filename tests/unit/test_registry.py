"""Tests for moodvault.providers.registry."""

import pytest

from moodvault.core.config import DEFAULTS
from moodvault.providers.backup.gdrive import DriveBackend
from moodvault.providers.backup.icloud import CloudBackend
from moodvault.providers.registry import BackendRegistry, registry, select_backend


class _Dummy:
    def __init__(self, config: dict | None = None):
        self.config = config


class TestBackendRegistry:
    def test_builtin_backends(self):
        assert set(registry.names()) == {"drive", "cloud"}

    def test_create_passes_section_and_shared_settings(self):
        reg = BackendRegistry()
        reg.register("dummy", _Dummy, "dummy")
        config = {"backup": {"timeout_seconds": 5, "name_prefix": "p"}, "dummy": {"x": 1}}
        instance = reg.create("dummy", config)
        assert instance.config == {"timeout_seconds": 5, "name_prefix": "p", "x": 1}

    def test_unknown(self):
        with pytest.raises(KeyError):
            BackendRegistry().create("nope", {})


class TestSelectBackend:
    def test_darwin_gets_cloud(self, monkeypatch):
        monkeypatch.setattr("moodvault.providers.registry.platform.system", lambda: "Darwin")
        assert isinstance(select_backend(DEFAULTS), CloudBackend)

    def test_other_platforms_get_drive(self, monkeypatch):
        monkeypatch.setattr("moodvault.providers.registry.platform.system", lambda: "Linux")
        assert isinstance(select_backend(DEFAULTS), DriveBackend)

    def test_explicit_choice_wins(self, monkeypatch):
        monkeypatch.setattr("moodvault.providers.registry.platform.system", lambda: "Linux")
        config = {**DEFAULTS, "backup": {**DEFAULTS["backup"], "backend": "cloud"}}
        assert isinstance(select_backend(config), CloudBackend)
