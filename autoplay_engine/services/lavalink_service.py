"""Lavalink-backed search backend, player and queue adapter."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import lavalink

from autoplay_engine.events.bus import PlaybackContext
from autoplay_engine.services.search_engine_manager import SearchResult
from autoplay_engine.utils.exceptions import SearchBackendError
from autoplay_engine.utils.tracks import TrackRef

_FAILED_LOAD_TYPES = {"load_failed", "error"}


def _load_type_name(result: Any) -> str:
    load_type = getattr(result, "load_type", None)
    return str(getattr(load_type, "value", load_type) or "").lower()


class AutoplayPlayer(lavalink.DefaultPlayer):
    """Lavalink player carrying the playback context of the session that created it."""

    __slots__ = ("playback_context",)

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.playback_context: Optional[PlaybackContext] = None


class LavalinkSearchBackend:
    """Resolve ``engine:query`` identifiers through a Lavalink client."""

    def __init__(self, client: lavalink.Client):
        self.client = client
        self.logger = logging.getLogger("AutoplayEngine.LavalinkSearch")

    async def search(self, query: str, *, requested_by: Optional[int], engine: str) -> SearchResult:
        identifier = f"{engine}:{query}" if engine else query
        result = await self.client.get_tracks(identifier)
        if _load_type_name(result) in _FAILED_LOAD_TYPES:
            error = getattr(result, "error", None)
            message = getattr(error, "message", None) or str(error or "Lavalink failed to load tracks")
            cause = getattr(error, "cause", None)
            if cause:
                message = f"{message} ({cause})"
            raise SearchBackendError(message)

        tracks: List[TrackRef] = []
        for track in getattr(result, "tracks", None) or []:
            if requested_by is not None and not getattr(track, "requester", None):
                track.requester = requested_by
            tracks.append(TrackRef.from_lavalink(track))
        self.logger.debug("Engine %s returned %d tracks for '%s'", engine, len(tracks), query[:100])
        return SearchResult(tracks=tracks)


class LavalinkQueue:
    """Expose a Lavalink player through the queue interface used by autoplay."""

    def __init__(self, player: lavalink.DefaultPlayer, *, requester: Optional[int] = None):
        self.player = player
        self.requester = requester

    @property
    def size(self) -> int:
        return len(self.player.queue)

    @property
    def current_track(self) -> Optional[TrackRef]:
        current = self.player.current
        return TrackRef.from_lavalink(current) if current else None

    @property
    def tracks(self) -> List[TrackRef]:
        return [TrackRef.from_lavalink(track) for track in self.player.queue]

    def add_track(self, track: TrackRef) -> None:
        source = track.source
        if source is None:
            raise ValueError(f"Track '{track.title}' has no Lavalink source to enqueue")
        self.player.add(source, requester=self.requester or 0)
