"""In-process event bus carrying playback notifications to their handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from autoplay_engine.utils.tracks import TrackRef

Handler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class PlaybackContext:
    """Who started a playback session and where to talk back to them."""

    guild_id: int
    requester_id: Optional[int] = None
    text_channel_id: Optional[int] = None


@dataclass(frozen=True)
class PlaybackStarted:
    context: PlaybackContext
    queue: Any
    track: TrackRef


@dataclass(frozen=True)
class PlaybackFinished:
    context: PlaybackContext
    queue: Any
    track: Optional[TrackRef] = None


@dataclass(frozen=True)
class PlaybackSkipped:
    context: PlaybackContext
    queue: Any
    track: Optional[TrackRef] = None


@dataclass(frozen=True)
class Subscription:
    event_type: Type[Any]
    handler: Handler


class PlaybackEventBus:
    """Dispatch events to handlers in registration order.

    A failing handler is logged and does not prevent the others from running.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[Any], List[Handler]] = {}
        self.logger = logging.getLogger("AutoplayEngine.Events")

    def subscribe(self, event_type: Type[Any], handler: Handler) -> Subscription:
        self._handlers.setdefault(event_type, []).append(handler)
        return Subscription(event_type, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        handlers = self._handlers.get(subscription.event_type)
        if not handlers:
            return
        try:
            handlers.remove(subscription.handler)
        except ValueError:
            return
        if not handlers:
            self._handlers.pop(subscription.event_type, None)

    def handler_count(self, event_type: Type[Any]) -> int:
        return len(self._handlers.get(event_type, ()))

    async def publish(self, event: Any) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                await handler(event)
            except Exception as exc:
                self.logger.error(
                    "Handler %s failed for %s: %s",
                    getattr(handler, "__qualname__", repr(handler)),
                    type(event).__name__,
                    exc,
                    exc_info=exc,
                )
