"""
Tests for the YAML + environment configuration loader (autoplay_engine/configs/settings.py).
"""

import pytest

from autoplay_engine.configs import settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "REDIS_HOST",
        "REDIS_PORT",
        "REDIS_PASSWORD",
        "REDIS_DB",
        "HISTORY_MAX_SIZE",
        "HISTORY_TTL_SECONDS",
        "HISTORY_METADATA_TTL_SECONDS",
        "SEARCH_PREFERRED_ENGINE",
        "SEARCH_FALLBACK_ENGINES",
        "SEARCH_MAX_RETRIES",
        "SEARCH_RETRY_DELAY_MS",
        "SEARCH_TIMEOUT_SECONDS",
        "AUTOPLAY_ENABLED",
        "AUTOPLAY_ARTIST_PROBABILITY",
        "AUTOPLAY_TARGET_QUEUE_SIZE",
        "METRICS_ENABLED",
        "METRICS_HOST",
        "METRICS_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


# ─── YAML loading ──────────────────────────────────────────────────────────────

class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = settings.load_config(str(tmp_path / "absent.yml"))
        assert cfg.history.max_history_size == 50

    def test_yaml_values_applied(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(
            "search:\n  preferred_engine: scsearch\n  max_retries: 2\nautoplay:\n  enabled: false\n",
            encoding="utf-8",
        )
        cfg = settings.load_config(str(path))
        assert cfg.search.preferred_engine == "scsearch"
        assert cfg.search.max_retries == 2
        assert cfg.autoplay.enabled is False

    def test_blank_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("", encoding="utf-8")
        assert settings.load_config(str(path)).search.max_retries == 3


# ─── Environment overrides ─────────────────────────────────────────────────────

class TestEnvOverrides:
    def test_redis_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REDIS_HOST", "cache")
        monkeypatch.setenv("REDIS_PORT", "6380")
        cfg = settings.load_config(str(tmp_path / "absent.yml"))
        assert cfg.redis.host == "cache"
        assert cfg.redis.port == 6380

    def test_search_override_keeps_other_fields(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SEARCH_FALLBACK_ENGINES", "SCSearch, ytsearch")
        monkeypatch.setenv("SEARCH_TIMEOUT_SECONDS", "9.5")
        cfg = settings.load_config(str(tmp_path / "absent.yml"))
        assert cfg.search.fallback_engines == ["scsearch", "ytsearch"]
        assert cfg.search.overall_timeout_seconds == 9.5
        assert cfg.search.fallback_timeout_seconds == 5.0

    def test_autoplay_and_metrics_flags(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AUTOPLAY_ENABLED", "no")
        monkeypatch.setenv("METRICS_ENABLED", "true")
        monkeypatch.setenv("METRICS_PORT", "9100")
        cfg = settings.load_config(str(tmp_path / "absent.yml"))
        assert cfg.autoplay.enabled is False
        assert cfg.metrics.enabled is True
        assert cfg.metrics.port == 9100

    def test_history_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HISTORY_MAX_SIZE", "25")
        cfg = settings.load_config(str(tmp_path / "absent.yml"))
        assert cfg.history.max_history_size == 25
        assert cfg.history.stats_ttl_seconds == 3600
