"""Playback handlers that feed history and trigger autoplay."""

from __future__ import annotations

import logging
from typing import List, Optional

from autoplay_engine.events.bus import (
    PlaybackEventBus,
    PlaybackFinished,
    PlaybackSkipped,
    PlaybackStarted,
    Subscription,
)
from autoplay_engine.services.autoplay_service import AutoplayService
from autoplay_engine.services.history_store import HistoryStore
from autoplay_engine.utils.tracks import extract_metadata


class PlaybackEvents:
    """Bind history recording and autoplay replenishment to playback events."""

    def __init__(self, history: HistoryStore, autoplay: AutoplayService):
        self.history = history
        self.autoplay = autoplay
        self.logger = logging.getLogger("AutoplayEngine.Events")
        self._subscriptions: List[Subscription] = []
        self._bus: Optional[PlaybackEventBus] = None

    def register(self, bus: PlaybackEventBus) -> None:
        if self._bus is not None:
            return
        self._bus = bus
        self._subscriptions = [
            bus.subscribe(PlaybackStarted, self.on_started),
            bus.subscribe(PlaybackFinished, self.on_finished),
            bus.subscribe(PlaybackSkipped, self.on_skipped),
        ]

    def unregister(self) -> None:
        if self._bus is None:
            return
        for subscription in self._subscriptions:
            self._bus.unsubscribe(subscription)
        self._subscriptions = []
        self._bus = None

    async def on_started(self, event: PlaybackStarted) -> None:
        guild_id = event.context.guild_id
        track = event.track
        last = await self.history.get_last_played(guild_id)
        # Lavalink may re-announce a track after a node reconnect.
        already_recorded = bool(last and track.external_id and last.track.external_id == track.external_id)
        if not already_recorded:
            await self.history.add_entry(guild_id, track)
            await self._record_metadata(track)
        await self.autoplay.replenish(guild_id, event.queue, event.context.requester_id)

    async def _record_metadata(self, track) -> None:
        if not track.external_id:
            return
        if await self.history.get_metadata(track.external_id):
            await self.history.increment_views(track.external_id)
        else:
            await self.history.store_metadata(track.external_id, extract_metadata(track))

    async def on_finished(self, event: PlaybackFinished) -> None:
        await self.autoplay.replenish(event.context.guild_id, event.queue, event.context.requester_id)

    async def on_skipped(self, event: PlaybackSkipped) -> None:
        guild_id = event.context.guild_id
        if event.queue.size == 0:
            await self.autoplay.reset_count(guild_id)
        await self.autoplay.replenish(guild_id, event.queue, event.context.requester_id)
