"""Configuration loader for the autoplay engine.

Loads ``config.yml`` (or the file named by ``CONFIG_PATH``), then applies
environment overrides from ``.env`` so deployments can tune Redis, search and
autoplay behaviour without editing the YAML file.
"""

import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .schema import AppConfig, AutoplayConfig, HistoryConfig, MetricsConfig, RedisConfig, SearchConfig

# Resolve env file precedence: .env.local (dev), .env.production (prod), then .env
_base_dir = Path(__file__).resolve().parents[2]
_env_files = [".env.local", ".env.production", ".env"]
_loaded = False
for _candidate in _env_files:
    _path = _base_dir / _candidate
    if _path.exists():
        load_dotenv(_path)
        _loaded = True
        break
if not _loaded:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path)


def _load_yaml(path: str) -> Dict:
    """Load a YAML config file, returning an empty dict if it is blank or missing."""
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
        return data or {}


def _env_bool(value: Optional[str], default: bool) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return default


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    redis_host = os.getenv("REDIS_HOST")
    redis_port = os.getenv("REDIS_PORT")
    redis_pwd = os.getenv("REDIS_PASSWORD")
    redis_db = os.getenv("REDIS_DB")
    if redis_host or redis_port or redis_pwd or redis_db:
        config.redis = RedisConfig(
            host=redis_host or config.redis.host,
            port=int(redis_port) if redis_port else config.redis.port,
            password=redis_pwd or config.redis.password,
            db=int(redis_db) if redis_db else config.redis.db,
        )

    history_size = os.getenv("HISTORY_MAX_SIZE")
    history_ttl = os.getenv("HISTORY_TTL_SECONDS")
    metadata_ttl = os.getenv("HISTORY_METADATA_TTL_SECONDS")
    if history_size or history_ttl or metadata_ttl:
        config.history = HistoryConfig(
            **{
                **config.history.model_dump(),
                "max_history_size": int(history_size) if history_size else config.history.max_history_size,
                "history_ttl_seconds": int(history_ttl) if history_ttl else config.history.history_ttl_seconds,
                "metadata_ttl_seconds": int(metadata_ttl) if metadata_ttl else config.history.metadata_ttl_seconds,
            }
        )

    search_engine = os.getenv("SEARCH_PREFERRED_ENGINE")
    search_fallbacks = os.getenv("SEARCH_FALLBACK_ENGINES")
    search_retries = os.getenv("SEARCH_MAX_RETRIES")
    search_delay = os.getenv("SEARCH_RETRY_DELAY_MS")
    search_timeout = os.getenv("SEARCH_TIMEOUT_SECONDS")
    if search_engine or search_fallbacks or search_retries or search_delay or search_timeout:
        fallbacks = config.search.fallback_engines
        if search_fallbacks:
            fallbacks = [item.strip().lower() for item in search_fallbacks.split(",") if item.strip()]
        config.search = SearchConfig(
            **{
                **config.search.model_dump(),
                "preferred_engine": search_engine or config.search.preferred_engine,
                "fallback_engines": fallbacks,
                "max_retries": int(search_retries) if search_retries else config.search.max_retries,
                "retry_delay_ms": int(search_delay) if search_delay else config.search.retry_delay_ms,
                "overall_timeout_seconds": (
                    float(search_timeout) if search_timeout else config.search.overall_timeout_seconds
                ),
            }
        )

    autoplay_enabled = os.getenv("AUTOPLAY_ENABLED")
    autoplay_probability = os.getenv("AUTOPLAY_ARTIST_PROBABILITY")
    autoplay_target = os.getenv("AUTOPLAY_TARGET_QUEUE_SIZE")
    if autoplay_enabled or autoplay_probability or autoplay_target:
        config.autoplay = AutoplayConfig(
            **{
                **config.autoplay.model_dump(),
                "enabled": _env_bool(autoplay_enabled, config.autoplay.enabled),
                "artist_probability": (
                    float(autoplay_probability) if autoplay_probability else config.autoplay.artist_probability
                ),
                "target_queue_size": int(autoplay_target) if autoplay_target else config.autoplay.target_queue_size,
            }
        )

    metrics_enabled = os.getenv("METRICS_ENABLED")
    metrics_host = os.getenv("METRICS_HOST")
    metrics_port = os.getenv("METRICS_PORT")
    if metrics_enabled or metrics_host or metrics_port:
        config.metrics = MetricsConfig(
            enabled=_env_bool(metrics_enabled, config.metrics.enabled),
            host=metrics_host or config.metrics.host,
            port=int(metrics_port) if metrics_port else config.metrics.port,
        )
    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Build an :class:`AppConfig` from YAML plus environment overrides."""
    raw = _load_yaml(path or os.getenv("CONFIG_PATH", "config.yml"))
    return _apply_env_overrides(AppConfig(**raw))


CONFIG = load_config()
