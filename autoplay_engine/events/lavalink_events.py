"""Bridge Lavalink track events onto the playback event bus."""

# pyright: reportMissingTypeStubs=false

from __future__ import annotations

import logging
from typing import Optional

import lavalink
from discord.ext import commands
from lavalink.events import TrackEndEvent, TrackStartEvent

from autoplay_engine.events.bus import (
    PlaybackContext,
    PlaybackEventBus,
    PlaybackFinished,
    PlaybackSkipped,
    PlaybackStarted,
)
from autoplay_engine.services.lavalink_service import LavalinkQueue
from autoplay_engine.utils.tracks import TrackRef

logger = logging.getLogger(__name__)

_FINISHED_REASONS = {"finished"}
_SKIPPED_REASONS = {"replaced", "stopped"}


def _reason_name(reason) -> str:
    return str(getattr(reason, "value", reason) or "").lower()


def playback_context(player) -> PlaybackContext:
    """Context attached to the player, or a bare one keyed by the guild."""
    context = getattr(player, "playback_context", None)
    if isinstance(context, PlaybackContext):
        return context
    return PlaybackContext(guild_id=player.guild_id)


class LavalinkEvents(commands.Cog):
    """Translate Lavalink callbacks into playback events."""

    def __init__(self, bot: commands.Bot, bus: Optional[PlaybackEventBus] = None):
        self.bot = bot
        self.bus = bus or getattr(bot, "playback_bus", None)
        if hasattr(bot, "lavalink"):
            bot.lavalink.add_event_hooks(self)

    @lavalink.listener()
    async def on_track_start(self, event: TrackStartEvent):
        if not isinstance(event, TrackStartEvent) or not getattr(event, "player", None) or not self.bus:
            return
        player = event.player
        context = playback_context(player)
        await self.bus.publish(
            PlaybackStarted(
                context=context,
                queue=LavalinkQueue(player, requester=context.requester_id),
                track=TrackRef.from_lavalink(event.track),
            )
        )

    @lavalink.listener()
    async def on_track_end(self, event: TrackEndEvent):
        if not isinstance(event, TrackEndEvent) or not getattr(event, "player", None) or not self.bus:
            return
        reason = _reason_name(getattr(event, "reason", None))
        if reason in _FINISHED_REASONS:
            event_type = PlaybackFinished
        elif reason in _SKIPPED_REASONS:
            event_type = PlaybackSkipped
        else:
            logger.debug("Ignoring track end with reason %s", reason or "unknown")
            return

        player = event.player
        context = playback_context(player)
        track = TrackRef.from_lavalink(event.track) if getattr(event, "track", None) else None
        await self.bus.publish(
            event_type(
                context=context,
                queue=LavalinkQueue(player, requester=context.requester_id),
                track=track,
            )
        )


async def setup(bot: commands.Bot) -> None:
    """Register the cog with the bot."""
    await bot.add_cog(LavalinkEvents(bot))
