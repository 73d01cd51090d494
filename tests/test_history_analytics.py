"""
Tests for HistoryAnalytics (autoplay_engine/services/history_analytics.py).
"""

import pytest

from autoplay_engine.configs.schema import HistoryConfig
from autoplay_engine.services.history_analytics import HistoryAnalytics, HistoryStats
from autoplay_engine.services.history_store import HistoryStore
from autoplay_engine.utils.tracks import TrackMetadata

from fakes import FakeClock, InMemoryKeyValueStore, make_track

GUILD = 7


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return InMemoryKeyValueStore(clock)


@pytest.fixture
def analytics(kv, clock):
    return HistoryAnalytics(HistoryStore(kv, HistoryConfig(), clock=clock))


async def _play(analytics, *tracks):
    for track in tracks:
        await analytics.history.add_entry(GUILD, track)


# ─── generate_stats ───────────────────────────────────────────────────────────

class TestGenerateStats:
    @pytest.mark.asyncio
    async def test_counts(self, analytics):
        await _play(
            analytics,
            make_track("a", author="X"),
            make_track("b", author="X"),
            make_track("c", author="Y"),
        )
        stats = await analytics.generate_stats(GUILD)
        assert stats.total_tracks == 3
        assert stats.unique_artists == 2
        assert stats.most_played_artist == "X"
        assert stats.average_plays_per_day == pytest.approx(round(3 / 7, 2))

    @pytest.mark.asyncio
    async def test_stats_cached_until_ttl(self, analytics, clock):
        await _play(analytics, make_track("a"))
        stats = await analytics.generate_stats(GUILD)
        assert await analytics.get_cached_stats(GUILD) == stats
        clock.advance(3601)
        assert await analytics.get_cached_stats(GUILD) is None

    @pytest.mark.asyncio
    async def test_empty_history(self, analytics):
        assert await analytics.generate_stats(GUILD) == HistoryStats()

    @pytest.mark.asyncio
    async def test_outage_still_returns_stats(self, analytics, kv):
        kv.failing = True
        assert await analytics.generate_stats(GUILD) == HistoryStats()
        assert await analytics.get_cached_stats(GUILD) is None


# ─── rankings ─────────────────────────────────────────────────────────────────

class TestRankings:
    @pytest.mark.asyncio
    async def test_top_artists(self, analytics):
        await _play(analytics, make_track("a", author="X"), make_track("b", author="Y"), make_track("c", author="X"))
        top = await analytics.top_artists(GUILD, limit=1)
        assert top == [{"artist": "X", "plays": 2}]

    @pytest.mark.asyncio
    async def test_popular_tracks_by_views(self, analytics):
        await _play(analytics, make_track("a"), make_track("b"))
        await analytics.history.store_metadata("a", TrackMetadata(artist="X", view_count=2))
        await analytics.history.store_metadata("b", TrackMetadata(artist="X", view_count=9))
        popular = await analytics.popular_tracks(GUILD)
        assert [item["trackId"] for item in popular] == ["b", "a"]
