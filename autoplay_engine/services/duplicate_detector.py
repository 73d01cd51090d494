"""Reject autoplay candidates that repeat or closely resemble recent plays."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from autoplay_engine.configs.schema import DuplicateConfig
from autoplay_engine.services.history_store import HistoryEntry, HistoryStore
from autoplay_engine.utils.tracks import TrackRef, normalize_author, normalize_title, title_similarity


@dataclass
class DuplicateCheckContext:
    """Everything needed to judge one candidate; built fresh per evaluation."""

    guild_id: int
    candidate: TrackRef
    ids_in_live_queue: Set[str] = field(default_factory=set)
    recent_history: List[HistoryEntry] = field(default_factory=list)


@dataclass(frozen=True)
class DuplicateVerdict:
    is_duplicate: bool
    reason: str = ""
    similarity: float = 0.0


_ACCEPT = DuplicateVerdict(is_duplicate=False)


class DuplicateDetector:
    """Ordered short-circuit chain of duplicate rules.

    1. missing external id, 2. id already queued, 3. id in the guild's history
    set, 4. URL seen recently, 5. normalised title similarity above the
    threshold, 6. same artist as the last track while that artist also
    appears elsewhere in the recent window.
    """

    def __init__(self, history: HistoryStore, config: DuplicateConfig):
        self.history = history
        self.config = config
        self.logger = logging.getLogger("AutoplayEngine.Duplicates")

    async def build_context(
        self,
        guild_id: int,
        candidate: TrackRef,
        live_ids: Iterable[str] = (),
        recent_history: Optional[List[HistoryEntry]] = None,
    ) -> DuplicateCheckContext:
        if recent_history is None:
            window = max(self.config.similarity_window, self.config.artist_window)
            recent_history = await self.history.get_recent(guild_id, window)
        return DuplicateCheckContext(
            guild_id=guild_id,
            candidate=candidate,
            ids_in_live_queue={item for item in live_ids if item},
            recent_history=list(recent_history),
        )

    async def is_duplicate(self, context: DuplicateCheckContext) -> bool:
        return (await self.check(context)).is_duplicate

    async def check(self, context: DuplicateCheckContext) -> DuplicateVerdict:
        """Evaluate the rule chain; any internal error rejects the candidate."""
        try:
            verdict = await self._evaluate(context)
        except Exception as exc:  # pragma: no cover - defensive
            self.logger.warning(
                "Duplicate check failed for '%s' in guild %s, rejecting: %s",
                context.candidate.title,
                context.guild_id,
                exc,
            )
            return DuplicateVerdict(is_duplicate=True, reason="error")
        if verdict.is_duplicate:
            self.logger.debug(
                "Rejected '%s' in guild %s (%s)", context.candidate.title, context.guild_id, verdict.reason
            )
        return verdict

    async def _evaluate(self, context: DuplicateCheckContext) -> DuplicateVerdict:
        candidate = context.candidate
        track_id = candidate.external_id
        history = context.recent_history

        if not track_id:
            return DuplicateVerdict(True, "missing_id")
        if track_id in context.ids_in_live_queue:
            return DuplicateVerdict(True, "in_queue")
        if await self.history.contains_id(context.guild_id, track_id) or any(
            entry.track.external_id == track_id for entry in history
        ):
            return DuplicateVerdict(True, "in_history")
        if candidate.url and any(entry.track.url == candidate.url for entry in history):
            return DuplicateVerdict(True, "url_match")

        similarity = self._best_similarity(candidate.title, history[: self.config.similarity_window])
        if similarity > self.config.similarity_threshold:
            return DuplicateVerdict(True, "similar_title", similarity)

        if self._artist_on_cooldown(candidate.author, history[: self.config.artist_window]):
            return DuplicateVerdict(True, "artist_cooldown", similarity)
        return DuplicateVerdict(False, "", similarity)

    def _best_similarity(self, title: str, entries: List[HistoryEntry]) -> float:
        normalized = normalize_title(title)
        if len(normalized) < self.config.min_title_length:
            return 0.0
        best = 0.0
        for entry in entries:
            other = normalize_title(entry.track.title)
            if len(other) < self.config.min_title_length:
                continue
            best = max(best, title_similarity(normalized, other))
            if best >= 1.0:
                break
        return best

    @staticmethod
    def _artist_on_cooldown(author: str, entries: List[HistoryEntry]) -> bool:
        artist = normalize_author(author)
        if not artist or not entries:
            return False
        if normalize_author(entries[0].track.author) != artist:
            return False
        return any(normalize_author(entry.track.author) == artist for entry in entries[1:])

    async def find_similar_tracks(self, guild_id: int, title: str, limit: int = 5) -> List[HistoryEntry]:
        """History entries sharing at least one title word with ``title``, newest first."""
        terms = set(title.lower().split())
        if not terms or limit <= 0:
            return []
        entries = await self.history.get_recent(guild_id, self.history.config.similar_scan_limit)
        similar = [entry for entry in entries if terms & set(entry.track.title.lower().split())]
        return similar[:limit]
