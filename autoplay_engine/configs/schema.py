"""Typed configuration models used throughout the autoplay engine."""

from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator


class RedisConfig(BaseModel):
    """Redis connection configuration for history, metadata and rate limits."""

    host: str = "127.0.0.1"
    port: int = 6379
    password: Optional[str] = None
    db: int = 0

    @field_validator("host", mode="before")
    @classmethod
    def _strip_host(cls, value: str):
        if isinstance(value, str):
            return value.strip()
        return value


class HistoryConfig(BaseModel):
    """Retention settings for per-guild play history and cached metadata."""

    max_history_size: int = 50
    history_ttl_seconds: int = 7 * 24 * 60 * 60
    metadata_ttl_seconds: int = 24 * 60 * 60
    stats_ttl_seconds: int = 60 * 60
    similar_scan_limit: int = 50

    @field_validator("max_history_size", "history_ttl_seconds", "metadata_ttl_seconds", "stats_ttl_seconds")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


class DuplicateConfig(BaseModel):
    """Tuning for the duplicate / near-duplicate rejection chain."""

    similarity_threshold: float = 0.8
    min_title_length: int = 5
    similarity_window: int = 50
    artist_window: int = 10

    @field_validator("similarity_threshold")
    @classmethod
    def _ratio(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        return value


class ErrorPatternsConfig(BaseModel):
    """Lower-case substrings used to classify search backend failures.

    Upstream extractors change their error vocabulary without notice, so the
    table lives in configuration and can be swapped from ``config.yml``.
    """

    parser_patterns: List[str] = [
        "innertubeerror",
        "parsingerror",
        "youtubei.js",
        "compositevideoprimaryinfo",
        "hypepointsfactoid",
        "gridshelfview",
        "sectionheaderview",
        "type mismatch",
        "typemismatch",
        "unable to find matching run",
        "signature",
        "cipher",
        "decrypt",
        "failed to parse",
        "no results section",
    ]
    network_patterns: List[str] = [
        "timeout",
        "timed out",
        "network",
        "econnreset",
        "econnrefused",
        "connection reset",
        "connection refused",
        "connection aborted",
        "socket hang up",
        "temporarily unavailable",
        "rate limit",
        "quota exceeded",
    ]
    parser_labels: Dict[str, str] = {
        "compositevideoprimaryinfo": "CompositeVideoPrimaryInfo",
        "hypepointsfactoid": "HypePointsFactoid",
        "gridshelfview": "GridShelfView",
        "sectionheaderview": "SectionHeaderView",
        "type mismatch": "TypeMismatch",
        "typemismatch": "TypeMismatch",
        "signature": "Signature",
        "cipher": "Signature",
        "decrypt": "Signature",
    }

    @field_validator("parser_patterns", "network_patterns", mode="before")
    @classmethod
    def _lower(cls, value):
        if isinstance(value, list):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return value


class SearchMessagesConfig(BaseModel):
    """User-facing strings returned with failed search outcomes."""

    timeout: str = "The search took too long to finish. Please try again."
    no_results: str = "No results were found for that search."
    parser_error: str = "The video provider returned data we could not read. Please try again."
    source_unavailable: str = "The video provider is temporarily unavailable. Try again in a few minutes."
    network_error: str = "Could not reach the search provider. Please try again."
    generic_error: str = "Something went wrong while searching."


class SearchConfig(BaseModel):
    """Search cascade behaviour."""

    preferred_engine: str = "ytsearch"
    fallback_engines: List[str] = ["scsearch", "spsearch", "amsearch", "ytmsearch", "ytsearch"]
    youtube_engines: List[str] = ["ytsearch", "ytmsearch"]
    max_retries: int = 3
    retry_delay_ms: int = 1000
    fallback_timeout_seconds: float = 5.0
    overall_timeout_seconds: float = 15.0
    enable_fallbacks: bool = True
    result_limit: int = 10
    messages: SearchMessagesConfig = SearchMessagesConfig()
    error_patterns: ErrorPatternsConfig = ErrorPatternsConfig()

    @field_validator("preferred_engine", mode="before")
    @classmethod
    def _strip_engine(cls, value: str):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("max_retries")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        return max(1, value)


class AutoplayConfig(BaseModel):
    """Autoplay replenishment policy."""

    enabled: bool = True
    target_queue_size: int = 2
    artist_probability: float = 0.55
    max_genre_tags: int = 2
    candidate_limit: int = 10
    rate_limit_rule: Optional[str] = "autoplay"

    @field_validator("artist_probability")
    @classmethod
    def _probability(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("artist_probability must be between 0 and 1")
        return value


class RateLimitRuleConfig(BaseModel):
    """One named sliding-window rule."""

    window_ms: int
    max_requests: int
    key_prefix: str
    description: str = ""


class RateLimitConfig(BaseModel):
    """Registry of named rate limit rules."""

    rules: Dict[str, RateLimitRuleConfig] = {
        "command": RateLimitRuleConfig(
            window_ms=60_000, max_requests=5, key_prefix="rate_limit:command", description="Rate limit for commands"
        ),
        "music": RateLimitRuleConfig(
            window_ms=30_000,
            max_requests=3,
            key_prefix="rate_limit:music",
            description="Rate limit for music commands",
        ),
        "download": RateLimitRuleConfig(
            window_ms=300_000,
            max_requests=2,
            key_prefix="rate_limit:download",
            description="Rate limit for download commands",
        ),
        "autoplay": RateLimitRuleConfig(
            window_ms=60_000,
            max_requests=6,
            key_prefix="rate_limit:autoplay",
            description="Autoplay replenishment cycles per guild",
        ),
        "search": RateLimitRuleConfig(
            window_ms=30_000,
            max_requests=10,
            key_prefix="rate_limit:search",
            description="Search backend lookups per user",
        ),
    }


class MetricsConfig(BaseModel):
    """Settings for the Prometheus search metrics exporter."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 3053


class AppConfig(BaseModel):
    """Root configuration container loaded from ``config.yml`` and ``.env``."""

    redis: RedisConfig = RedisConfig()
    history: HistoryConfig = HistoryConfig()
    duplicates: DuplicateConfig = DuplicateConfig()
    search: SearchConfig = SearchConfig()
    autoplay: AutoplayConfig = AutoplayConfig()
    rate_limits: RateLimitConfig = RateLimitConfig()
    metrics: MetricsConfig = MetricsConfig()
