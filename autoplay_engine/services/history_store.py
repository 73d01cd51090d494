"""Per-guild play history and per-track metadata persisted in the key-value store."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from autoplay_engine.configs.schema import HistoryConfig
from autoplay_engine.services.kv_store import KeyValueStore
from autoplay_engine.utils.exceptions import KeyValueUnavailableError
from autoplay_engine.utils.tracks import TrackMetadata, TrackRef


@dataclass(frozen=True)
class HistoryEntry:
    """A track together with the moment it was recorded as played."""

    track: TrackRef
    played_at_ms: int

    def to_json(self) -> str:
        return json.dumps({"track": self.track.to_dict(), "playedAt": self.played_at_ms})

    @classmethod
    def from_json(cls, payload: str) -> "HistoryEntry":
        data = json.loads(payload)
        return cls(track=TrackRef.from_dict(data.get("track") or {}), played_at_ms=int(data.get("playedAt") or 0))


class HistoryStore:
    """Bounded, TTL-governed history of recently played tracks per guild.

    Every public method fails open: when the backend is unavailable the error
    is logged and an empty result is returned, so history bookkeeping can
    never stall playback.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: HistoryConfig,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.config = config
        self.logger = logging.getLogger("AutoplayEngine.History")
        self._clock = clock

    # ------------------------------------------------------------------ keys
    @staticmethod
    def _history_key(guild_id: int) -> str:
        return f"history:{guild_id}:entries"

    @staticmethod
    def _ids_key(guild_id: int) -> str:
        return f"history:{guild_id}:ids"

    @staticmethod
    def stats_key(guild_id: int) -> str:
        return f"history:{guild_id}:stats"

    @staticmethod
    def _metadata_key(external_id: str) -> str:
        return f"history:meta:{external_id}"

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ------------------------------------------------------------------ history
    async def add_entry(self, guild_id: int, track: TrackRef) -> None:
        """Record ``track`` as the newest entry for ``guild_id``."""
        entry = HistoryEntry(track=track, played_at_ms=self.now_ms())
        history_key = self._history_key(guild_id)
        ttl = self.config.history_ttl_seconds
        cap = self.config.max_history_size
        ids_key = self._ids_key(guild_id)
        try:
            await self.store.list_prepend(history_key, entry.to_json())
            evicted = await self.store.list_range(history_key, cap, -1)
            await self.store.list_trim(history_key, 0, cap - 1)
            await self.store.expire(history_key, ttl)
            if track.external_id:
                await self.store.set_add(ids_key, track.external_id)
                await self.store.expire(ids_key, ttl)
            if evicted:
                await self._forget_evicted_ids(history_key, ids_key, evicted)
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to add '%s' to history for guild %s: %s", track.title, guild_id, exc)
            return
        self.logger.debug("Added '%s' to history for guild %s", track.title, guild_id)

    async def _forget_evicted_ids(self, history_key: str, ids_key: str, evicted: List[str]) -> None:
        # IDs that were replayed and are still inside the list stay in the set.
        retained = {entry.track.external_id for entry in self._parse(await self.store.list_range(history_key, 0, -1))}
        stale = {entry.track.external_id for entry in self._parse(evicted)} - retained
        stale.discard(None)
        if stale:
            await self.store.set_remove(ids_key, *sorted(stale))

    def _parse(self, raw_entries: List[str]) -> List[HistoryEntry]:
        entries: List[HistoryEntry] = []
        for raw in raw_entries:
            try:
                entries.append(HistoryEntry.from_json(raw))
            except (ValueError, TypeError, AttributeError) as exc:
                self.logger.debug("Dropping unreadable history entry: %s", exc)
        return entries

    async def get_recent(self, guild_id: int, limit: int = 10) -> List[HistoryEntry]:
        """Return up to ``limit`` entries, newest first."""
        if limit <= 0:
            return []
        try:
            raw_entries = await self.store.list_range(self._history_key(guild_id), 0, limit - 1)
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to read history for guild %s: %s", guild_id, exc)
            return []
        return self._parse(raw_entries)

    async def get_last_played(self, guild_id: int) -> Optional[HistoryEntry]:
        recent = await self.get_recent(guild_id, 1)
        return recent[0] if recent else None

    async def contains_id(self, guild_id: int, external_id: str) -> bool:
        """O(1) lookup of ``external_id`` in the guild's history ID set."""
        if not external_id:
            return False
        try:
            return await self.store.set_is_member(self._ids_key(guild_id), external_id)
        except KeyValueUnavailableError as exc:
            self.logger.error("History ID lookup failed for guild %s: %s", guild_id, exc)
            return False

    async def get_history_ids(self, guild_id: int) -> List[str]:
        try:
            return await self.store.set_members(self._ids_key(guild_id))
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to list history IDs for guild %s: %s", guild_id, exc)
            return []

    async def clear(self, guild_id: int) -> None:
        """Drop the history list, ID set, cached stats and track metadata for a guild."""
        try:
            track_ids = await self.store.set_members(self._ids_key(guild_id))
            keys = {self._history_key(guild_id), self._ids_key(guild_id), self.stats_key(guild_id)}
            keys.update(self._metadata_key(track_id) for track_id in track_ids)
            keys.update(await self.store.keys_by_pattern(f"history:{guild_id}:*"))
            await self.store.delete(*sorted(keys))
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to clear history for guild %s: %s", guild_id, exc)
            return
        self.logger.debug("Cleared history for guild %s", guild_id)

    # ------------------------------------------------------------------ metadata
    async def store_metadata(self, external_id: str, metadata: TrackMetadata) -> None:
        if not external_id:
            return
        try:
            await self.store.set(
                self._metadata_key(external_id),
                json.dumps(metadata.to_dict()),
                ttl_seconds=self.config.metadata_ttl_seconds,
            )
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to store metadata for track %s: %s", external_id, exc)

    async def get_metadata(self, external_id: str) -> Optional[TrackMetadata]:
        if not external_id:
            return None
        try:
            payload = await self.store.get(self._metadata_key(external_id))
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to read metadata for track %s: %s", external_id, exc)
            return None
        if not payload:
            return None
        try:
            return TrackMetadata.from_dict(json.loads(payload))
        except (ValueError, TypeError, AttributeError):
            self.logger.debug("Ignoring unreadable metadata for track %s", external_id)
            return None

    async def increment_views(self, external_id: str, amount: int = 1) -> None:
        """Bump the cached view count for ``external_id`` if metadata exists."""
        metadata = await self.get_metadata(external_id)
        if not metadata:
            return
        updated = TrackMetadata(artist=metadata.artist, tags=metadata.tags, view_count=metadata.view_count + amount)
        await self.store_metadata(external_id, updated)
