"""Tests for stratus.core.settings.

Covers:
- Defaults
- STRATUS_ environment overrides
- Cached accessor
"""

import pytest

from stratus.core.settings import StratusSettings, get_settings


class TestStratusSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STRATUS_AZ_PATH", raising=False)
        s = StratusSettings(_env_file=None)
        assert s.az_path == "az"
        assert s.log_level == "INFO"
        assert s.json_logs is None
        assert s.command_timeout_seconds == 1800

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("STRATUS_AZ_PATH", "/opt/az/bin/az")
        monkeypatch.setenv("STRATUS_COMMAND_TIMEOUT_SECONDS", "60")
        monkeypatch.setenv("STRATUS_JSON_LOGS", "true")
        s = StratusSettings(_env_file=None)
        assert s.az_path == "/opt/az/bin/az"
        assert s.command_timeout_seconds == 60
        assert s.json_logs is True

    def test_unknown_env_ignored(self, monkeypatch):
        monkeypatch.setenv("STRATUS_NOT_A_SETTING", "x")
        StratusSettings(_env_file=None)


class TestGetSettings:
    @pytest.fixture(autouse=True)
    def _clear_cache(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_cached(self):
        assert get_settings() is get_settings()
