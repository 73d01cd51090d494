"""Prometheus counters for search, autoplay and rate limiting."""

# pyright: reportMissingTypeStubs=false

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

from autoplay_engine.configs.schema import MetricsConfig


class MetricsService:
    """Collect engine metrics into a private registry and optionally expose them."""

    def __init__(self, config: MetricsConfig):
        self.config = config
        self.enabled = config.enabled
        self.logger = logging.getLogger("AutoplayEngine.Metrics")
        self.registry = CollectorRegistry()
        self._started = False

        self.search_counter = Counter(
            "autoplay_engine_searches_total",
            "Search resolutions by final state and engine",
            labelnames=("state", "engine", "fallback"),
            registry=self.registry,
        )
        self.search_attempts = Histogram(
            "autoplay_engine_search_attempts",
            "Backend calls needed per search resolution",
            buckets=(1, 2, 3, 5, 8, 13),
            registry=self.registry,
        )
        self.autoplay_counter = Counter(
            "autoplay_engine_autoplay_tracks_total",
            "Tracks inserted by autoplay",
            registry=self.registry,
        )
        self.duplicate_counter = Counter(
            "autoplay_engine_duplicates_rejected_total",
            "Autoplay candidates rejected as duplicates",
            labelnames=("reason",),
            registry=self.registry,
        )
        self.rate_limit_counter = Counter(
            "autoplay_engine_rate_limited_total",
            "Requests denied by a rate limit rule",
            labelnames=("rule",),
            registry=self.registry,
        )

    def start(self) -> None:
        if not self.enabled or self._started:
            return
        start_http_server(addr=self.config.host, port=self.config.port, registry=self.registry)
        self._started = True
        self.logger.info("Prometheus exporter listening on %s:%s", self.config.host, self.config.port)

    # ------------------------------------------------------------------ public helpers
    def record_search(self, outcome) -> None:
        if not self.enabled:
            return
        self.search_counter.labels(
            state=outcome.state.value,
            engine=outcome.engine or "none",
            fallback="yes" if outcome.used_fallback else "no",
        ).inc()
        self.search_attempts.observe(outcome.attempts)

    def record_autoplay(self, inserted: int) -> None:
        if self.enabled and inserted > 0:
            self.autoplay_counter.inc(inserted)

    def record_duplicate(self, reason: str) -> None:
        if not self.enabled:
            return
        self.duplicate_counter.labels(reason=reason or "unknown").inc()

    def record_rate_limited(self, rule: str) -> None:
        if not self.enabled:
            return
        self.rate_limit_counter.labels(rule=rule).inc()
