"""Tests for environment-driven settings."""

from timesync.config.settings import DEFAULT_URL, Settings
from timesync.sync.engine import SyncConfig


def test_defaults():
    """Test default settings"""
    s = Settings()
    assert s.URL == DEFAULT_URL
    assert s.PORT == 4200
    assert s.PROBE_COUNT == 5
    assert s.INDEX_PAGE.endswith("index.html")


def test_env_overrides(monkeypatch):
    """Test environment overrides"""
    monkeypatch.setenv("TIMESYNC_PORT", "5001")
    monkeypatch.setenv("TIMESYNC_URL", "ws://localhost:5001")
    monkeypatch.setenv("TIMESYNC_PROBE_TIMEOUT", "1.5")

    s = Settings()

    assert s.PORT == 5001
    assert s.URL == "ws://localhost:5001"
    assert s.PROBE_TIMEOUT == 1.5


def test_sync_config_from_settings(monkeypatch):
    """Test engine config built from settings"""
    monkeypatch.setenv("TIMESYNC_RESYNC_INTERVAL", "60")
    monkeypatch.setenv("TIMESYNC_RECONNECT_MAX_DELAY", "10")

    config = SyncConfig.from_settings(Settings())

    assert config.resync_interval == 60.0
    assert config.reconnect_max_delay == 10.0
    assert config.reconnect_base_delay == 2.0
    assert config.url == DEFAULT_URL
