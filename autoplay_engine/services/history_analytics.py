"""Aggregate listening statistics computed from the history store."""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from autoplay_engine.services.history_store import HistoryStore
from autoplay_engine.utils.exceptions import KeyValueUnavailableError

_WEEK_MS = 7 * 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class HistoryStats:
    total_tracks: int = 0
    unique_artists: int = 0
    most_played_artist: str = "Unknown"
    average_plays_per_day: float = 0.0


class HistoryAnalytics:
    """Summaries over a guild's history, cached for ``stats_ttl_seconds``."""

    def __init__(self, history: HistoryStore):
        self.history = history
        self.logger = logging.getLogger("AutoplayEngine.History")

    async def generate_stats(self, guild_id: int) -> HistoryStats:
        entries = await self.history.get_recent(guild_id, self.history.config.max_history_size)
        artists = Counter(entry.track.author for entry in entries)
        now_ms = self.history.now_ms()
        recent = [entry for entry in entries if entry.played_at_ms > now_ms - _WEEK_MS]
        stats = HistoryStats(
            total_tracks=len(entries),
            unique_artists=len(artists),
            most_played_artist=artists.most_common(1)[0][0] if artists else "Unknown",
            average_plays_per_day=round(len(recent) / 7, 2),
        )
        try:
            await self.history.store.set(
                HistoryStore.stats_key(guild_id),
                json.dumps(asdict(stats)),
                ttl_seconds=self.history.config.stats_ttl_seconds,
            )
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to cache stats for guild %s: %s", guild_id, exc)
        return stats

    async def get_cached_stats(self, guild_id: int) -> Optional[HistoryStats]:
        try:
            payload = await self.history.store.get(HistoryStore.stats_key(guild_id))
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to read cached stats for guild %s: %s", guild_id, exc)
            return None
        if not payload:
            return None
        try:
            return HistoryStats(**json.loads(payload))
        except (ValueError, TypeError):
            return None

    async def top_artists(self, guild_id: int, limit: int = 10) -> List[Dict[str, object]]:
        entries = await self.history.get_recent(guild_id, self.history.config.max_history_size)
        counts = Counter(entry.track.author for entry in entries)
        return [{"artist": artist, "plays": plays} for artist, plays in counts.most_common(limit)]

    async def popular_tracks(self, guild_id: int, limit: int = 10) -> List[Dict[str, object]]:
        """Tracks from the guild's ID set ordered by cached view count."""
        popular = []
        for track_id in await self.history.get_history_ids(guild_id):
            metadata = await self.history.get_metadata(track_id)
            if metadata:
                popular.append({"trackId": track_id, "views": metadata.view_count})
        popular.sort(key=lambda item: item["views"], reverse=True)
        return popular[:limit]
