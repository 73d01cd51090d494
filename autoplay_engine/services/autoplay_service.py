"""Autoplay replenishment: keep a guild's queue topped up with related tracks."""

from __future__ import annotations

import logging
import random
from typing import Any, List, Optional, Protocol, Sequence, Set

from autoplay_engine.configs.schema import AutoplayConfig
from autoplay_engine.configs.title_patterns import GENRE_KEYWORDS
from autoplay_engine.services.duplicate_detector import DuplicateDetector
from autoplay_engine.services.history_store import HistoryEntry, HistoryStore
from autoplay_engine.services.kv_store import KeyValueStore
from autoplay_engine.services.rate_limit_service import RateLimitService
from autoplay_engine.services.search_engine_manager import SearchEngineManager
from autoplay_engine.utils.exceptions import KeyValueUnavailableError
from autoplay_engine.utils.tracks import (
    ACOUSTIC_TAG,
    LIVE_TAG,
    TrackMetadata,
    TrackRef,
    extract_metadata,
    is_variant_title,
)


class PlaybackQueue(Protocol):
    @property
    def size(self) -> int: ...

    @property
    def current_track(self) -> Optional[TrackRef]: ...

    @property
    def tracks(self) -> Sequence[TrackRef]: ...

    def add_track(self, track: TrackRef) -> None: ...


def live_queue_ids(queue: PlaybackQueue) -> Set[str]:
    """External ids of the playing track and everything queued behind it."""
    ids = {track.external_id for track in queue.tracks if track.external_id}
    current = queue.current_track
    if current and current.external_id:
        ids.add(current.external_id)
    return ids


def build_related_query(
    metadata: TrackMetadata,
    rng: random.Random,
    *,
    artist_probability: float = 0.55,
    max_genre_tags: int = 2,
) -> str:
    """Compose a search query from the seed track's genre tags, artist and live/acoustic marker."""
    parts: List[str] = [genre for genre in GENRE_KEYWORDS if genre in metadata.tags][:max_genre_tags]
    if metadata.artist and (not parts or rng.random() < artist_probability):
        parts.insert(0, metadata.artist)
    if LIVE_TAG in metadata.tags:
        parts.append(LIVE_TAG)
    elif ACOUSTIC_TAG in metadata.tags:
        parts.append(ACOUSTIC_TAG)
    return " ".join(parts).strip()


class AutoplayService:
    """Insert related, non-duplicate tracks when the live queue runs low.

    Every cycle is best-effort: failures are logged and the cycle is abandoned
    so the playback loop never sees an exception.
    """

    def __init__(
        self,
        history: HistoryStore,
        detector: DuplicateDetector,
        search: SearchEngineManager,
        config: AutoplayConfig,
        *,
        store: KeyValueStore,
        rate_limiter: Optional[RateLimitService] = None,
        metrics: Optional[Any] = None,
        rng: Optional[random.Random] = None,
    ):
        self.history = history
        self.detector = detector
        self.search = search
        self.config = config
        self.store = store
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self.logger = logging.getLogger("AutoplayEngine.Autoplay")
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------ helpers
    @staticmethod
    def _counter_key(guild_id: int) -> str:
        return f"autoplay:{guild_id}:count"

    async def _view_count(self, track: TrackRef) -> int:
        if track.view_count:
            return track.view_count
        if not track.external_id:
            return 0
        cached = await self.history.get_metadata(track.external_id)
        return cached.view_count if cached else 0

    async def _rank(self, candidates: Sequence[TrackRef], seed: TrackMetadata) -> List[TrackRef]:
        scored = []
        for track in candidates:
            # Tags are derived the same way as the seed so overlaps compare like with like.
            shared = len(extract_metadata(track).tags & seed.tags)
            scored.append((shared, await self._view_count(track), track))
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [track for _, _, track in scored]

    # ------------------------------------------------------------------ counter
    async def increment_count(self, guild_id: int, amount: int = 1) -> int:
        try:
            key = self._counter_key(guild_id)
            count = await self.store.incr(key, amount)
            await self.store.expire(key, self.history.config.history_ttl_seconds)
            return count
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to bump autoplay counter for guild %s: %s", guild_id, exc)
            return 0

    async def get_count(self, guild_id: int) -> int:
        try:
            raw = await self.store.get(self._counter_key(guild_id))
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to read autoplay counter for guild %s: %s", guild_id, exc)
            return 0
        try:
            return int(raw) if raw else 0
        except ValueError:
            return 0

    async def reset_count(self, guild_id: int) -> None:
        try:
            await self.store.delete(self._counter_key(guild_id))
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to reset autoplay counter for guild %s: %s", guild_id, exc)

    # ------------------------------------------------------------------ public API
    async def replenish(self, guild_id: int, queue: PlaybackQueue, requester: Optional[int] = None) -> int:
        """Top the queue up to ``target_queue_size``; returns the number of tracks inserted."""
        if not self.config.enabled:
            return 0
        try:
            return await self._replenish(guild_id, queue, requester)
        except Exception as exc:
            self.logger.error("Autoplay cycle failed for guild %s: %s", guild_id, exc, exc_info=exc)
            return 0

    async def _replenish(self, guild_id: int, queue: PlaybackQueue, requester: Optional[int]) -> int:
        target = self.config.target_queue_size
        size = queue.size
        if size >= target:
            return 0

        last = await self.history.get_last_played(guild_id)
        if not last or not last.track.external_id:
            self.logger.debug("Guild %s has no playback history to seed autoplay", guild_id)
            return 0

        seed = await self.history.get_metadata(last.track.external_id)
        if not seed:
            self.logger.debug("No cached metadata for %s; skipping autoplay", last.track.external_id)
            return 0

        if self.rate_limiter and self.config.rate_limit_rule:
            verdict = await self.rate_limiter.check_and_record(str(guild_id), self.config.rate_limit_rule)
            if not verdict.allowed:
                self.logger.debug("Autoplay for guild %s rate limited (retry in %ss)", guild_id, verdict.retry_after)
                return 0

        query = build_related_query(
            seed,
            self._rng,
            artist_probability=self.config.artist_probability,
            max_genre_tags=self.config.max_genre_tags,
        )
        if not query:
            return 0

        outcome = await self.search.resolve(query, requester)
        if not outcome.succeeded:
            self.logger.warning("Autoplay search for '%s' failed: %s", query, outcome.error)
            return 0

        ranked = await self._rank(outcome.tracks[: self.config.candidate_limit], seed)
        live_ids = live_queue_ids(queue)
        recent = await self.history.get_recent(
            guild_id, max(self.detector.config.similarity_window, self.detector.config.artist_window)
        )

        inserted = 0
        wanted = target - size
        for candidate in ranked:
            if inserted >= wanted:
                break
            if is_variant_title(candidate.title):
                self.logger.debug("Skipping variant title '%s'", candidate.title)
                continue
            context = await self.detector.build_context(guild_id, candidate, live_ids, recent)
            verdict = await self.detector.check(context)
            if verdict.is_duplicate:
                if self.metrics:
                    self.metrics.record_duplicate(verdict.reason)
                continue
            queue.add_track(candidate)
            if candidate.external_id:
                live_ids.add(candidate.external_id)
            # Picks from this cycle count as just played for the next candidate.
            recent.insert(0, HistoryEntry(track=candidate, played_at_ms=self.history.now_ms()))
            inserted += 1

        if not inserted:
            self.logger.info("Autoplay found no acceptable candidate for guild %s (query '%s')", guild_id, query)
            return 0

        await self.increment_count(guild_id, inserted)
        if self.metrics:
            self.metrics.record_autoplay(inserted)
        self.logger.info("Autoplay added %d track(s) to guild %s from query '%s'", inserted, guild_id, query)
        return inserted
