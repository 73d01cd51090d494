"""
Tests for the playback event bus and handlers (autoplay_engine/events/bus.py,
autoplay_engine/events/playback_events.py).
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from autoplay_engine.configs.schema import HistoryConfig
from autoplay_engine.events.bus import (
    PlaybackContext,
    PlaybackEventBus,
    PlaybackFinished,
    PlaybackSkipped,
    PlaybackStarted,
)
from autoplay_engine.events.playback_events import PlaybackEvents
from autoplay_engine.services.history_store import HistoryStore

from fakes import FakeClock, InMemoryKeyValueStore, make_track

CONTEXT = PlaybackContext(guild_id=77, requester_id=5, text_channel_id=10)


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def history():
    kv = InMemoryKeyValueStore(FakeClock())
    return HistoryStore(kv, HistoryConfig(), clock=kv.clock)


@pytest.fixture
def autoplay():
    service = MagicMock()
    service.replenish = AsyncMock(return_value=0)
    service.reset_count = AsyncMock()
    return service


@pytest.fixture
def bus():
    return PlaybackEventBus()


@pytest.fixture
def handlers(history, autoplay, bus):
    events = PlaybackEvents(history, autoplay)
    events.register(bus)
    return events


def queue_of(size):
    queue = MagicMock()
    queue.size = size
    return queue


# ─── PlaybackEventBus ─────────────────────────────────────────────────────────

class TestEventBus:
    @pytest.mark.asyncio
    async def test_handlers_run_in_order(self, bus):
        seen = []

        async def first(event):
            seen.append(("first", event))

        async def second(event):
            seen.append(("second", event))

        bus.subscribe(PlaybackFinished, first)
        bus.subscribe(PlaybackFinished, second)
        event = PlaybackFinished(context=CONTEXT, queue=queue_of(0))
        await bus.publish(event)
        assert seen == [("first", event), ("second", event)]

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self, bus):
        survivor = AsyncMock()
        bus.subscribe(PlaybackFinished, AsyncMock(side_effect=RuntimeError("boom")))
        bus.subscribe(PlaybackFinished, survivor)
        await bus.publish(PlaybackFinished(context=CONTEXT, queue=queue_of(0)))
        survivor.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus):
        handler = AsyncMock()
        subscription = bus.subscribe(PlaybackSkipped, handler)
        bus.unsubscribe(subscription)
        bus.unsubscribe(subscription)
        await bus.publish(PlaybackSkipped(context=CONTEXT, queue=queue_of(0)))
        handler.assert_not_awaited()
        assert bus.handler_count(PlaybackSkipped) == 0

    @pytest.mark.asyncio
    async def test_events_routed_by_type(self, bus):
        handler = AsyncMock()
        bus.subscribe(PlaybackStarted, handler)
        await bus.publish(PlaybackFinished(context=CONTEXT, queue=queue_of(0)))
        handler.assert_not_awaited()


# ─── PlaybackEvents ───────────────────────────────────────────────────────────

class TestPlaybackEvents:
    @pytest.mark.asyncio
    async def test_started_records_history_and_metadata(self, bus, handlers, history, autoplay):
        queue = queue_of(0)
        track = make_track("abc", "Rock Song", "Band")
        await bus.publish(PlaybackStarted(context=CONTEXT, queue=queue, track=track))

        last = await history.get_last_played(77)
        assert last is not None and last.track == track
        metadata = await history.get_metadata("abc")
        assert metadata is not None and "rock" in metadata.tags
        autoplay.replenish.assert_awaited_once_with(77, queue, 5)

    @pytest.mark.asyncio
    async def test_started_twice_records_once(self, bus, handlers, history):
        track = make_track("abc", "Rock Song", "Band")
        for _ in range(2):
            await bus.publish(PlaybackStarted(context=CONTEXT, queue=queue_of(0), track=track))
        assert len(await history.get_recent(77, 10)) == 1

    @pytest.mark.asyncio
    async def test_finished_replenishes(self, bus, handlers, autoplay):
        queue = queue_of(1)
        await bus.publish(PlaybackFinished(context=CONTEXT, queue=queue))
        autoplay.replenish.assert_awaited_once_with(77, queue, 5)

    @pytest.mark.asyncio
    async def test_skip_with_empty_queue_resets_counter(self, bus, handlers, autoplay):
        await bus.publish(PlaybackSkipped(context=CONTEXT, queue=queue_of(0)))
        autoplay.reset_count.assert_awaited_once_with(77)
        autoplay.replenish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skip_with_queue_keeps_counter(self, bus, handlers, autoplay):
        await bus.publish(PlaybackSkipped(context=CONTEXT, queue=queue_of(3)))
        autoplay.reset_count.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unregister(self, bus, handlers, autoplay):
        handlers.unregister()
        await bus.publish(PlaybackFinished(context=CONTEXT, queue=queue_of(0)))
        autoplay.replenish.assert_not_awaited()
        assert bus.handler_count(PlaybackStarted) == 0

    @pytest.mark.asyncio
    async def test_replay_bumps_view_count(self, bus, handlers, history):
        track = make_track("abc", "Rock Song", "Band")
        other = make_track("def", "Other Song", "Someone")
        for played in (track, other, track):
            await bus.publish(PlaybackStarted(context=CONTEXT, queue=queue_of(0), track=played))
        metadata = await history.get_metadata("abc")
        assert metadata is not None and metadata.view_count == 1
