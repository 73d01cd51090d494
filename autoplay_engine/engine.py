"""Composition root wiring the autoplay engine services together."""

from __future__ import annotations

import logging
import random
from typing import Optional

import lavalink

from autoplay_engine.configs.schema import AppConfig
from autoplay_engine.events.bus import PlaybackEventBus
from autoplay_engine.events.playback_events import PlaybackEvents
from autoplay_engine.services.autoplay_service import AutoplayService
from autoplay_engine.services.duplicate_detector import DuplicateDetector
from autoplay_engine.services.history_analytics import HistoryAnalytics
from autoplay_engine.services.history_store import HistoryStore
from autoplay_engine.services.kv_store import KeyValueStore, RedisKeyValueStore
from autoplay_engine.services.lavalink_service import LavalinkSearchBackend
from autoplay_engine.services.metrics_service import MetricsService
from autoplay_engine.services.rate_limit_service import RateLimitService
from autoplay_engine.services.search_engine_manager import SearchBackend, SearchEngineManager
from autoplay_engine.utils.exceptions import KeyValueUnavailableError


class AutoplayEngine:
    """Build every service once per process and share them by reference.

    All services receive their collaborators explicitly; nothing reads module
    level state, so tests can swap the store or search backend freely.
    """

    def __init__(
        self,
        config: AppConfig,
        search_backend: SearchBackend,
        *,
        store: Optional[KeyValueStore] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.logger = logging.getLogger("AutoplayEngine")
        self.store: KeyValueStore = store or RedisKeyValueStore(config.redis)
        self.metrics = MetricsService(config.metrics)
        self.history = HistoryStore(self.store, config.history)
        self.analytics = HistoryAnalytics(self.history)
        self.duplicates = DuplicateDetector(self.history, config.duplicates)
        self.rate_limits = RateLimitService(self.store, config.rate_limits, metrics=self.metrics)
        self.search = SearchEngineManager(search_backend, config.search, metrics=self.metrics)
        self.autoplay = AutoplayService(
            self.history,
            self.duplicates,
            self.search,
            config.autoplay,
            store=self.store,
            rate_limiter=self.rate_limits,
            metrics=self.metrics,
            rng=rng,
        )
        self.bus = PlaybackEventBus()
        self.playback_events = PlaybackEvents(self.history, self.autoplay)

    @classmethod
    def for_lavalink(cls, config: AppConfig, client: lavalink.Client, **kwargs) -> "AutoplayEngine":
        return cls(config, LavalinkSearchBackend(client), **kwargs)

    def attach(self, bot) -> None:
        """Expose the engine on the bot so the Lavalink event cog can find the bus."""
        bot.autoplay_engine = self
        bot.playback_bus = self.bus

    async def start(self) -> None:
        self.playback_events.register(self.bus)
        try:
            await self.store.ping()
        except KeyValueUnavailableError:
            self.logger.warning("Key-value backend is unreachable; history and rate limits will fail open.")
        self.metrics.start()
        self.logger.info(
            "Autoplay engine ready (preferred engine=%s, fallbacks=%s)",
            self.config.search.preferred_engine,
            ",".join(self.search.fallback_order(self.config.search.preferred_engine)),
        )

    async def close(self) -> None:
        self.playback_events.unregister()
        await self.store.close()
