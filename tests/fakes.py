"""In-memory stand-ins for the key-value store and search backend."""

from __future__ import annotations

import fnmatch
from typing import Callable, Dict, List, Optional, Sequence, Set

from autoplay_engine.services.search_engine_manager import SearchResult
from autoplay_engine.utils.exceptions import KeyValueUnavailableError
from autoplay_engine.utils.tracks import TrackRef


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryKeyValueStore:
    """Dict-backed store with TTLs driven by a :class:`FakeClock`.

    Set ``failing = True`` to make every call raise like an unreachable Redis.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock or FakeClock()
        self.failing = False
        self.values: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.expiry: Dict[str, float] = {}

    def _check(self) -> None:
        if self.failing:
            raise KeyValueUnavailableError("connection refused")
        now = self.clock()
        for key, deadline in list(self.expiry.items()):
            if deadline <= now:
                self._drop(key)

    def _drop(self, key: str) -> bool:
        removed = False
        for bucket in (self.values, self.lists, self.sets):
            if key in bucket:
                del bucket[key]
                removed = True
        self.expiry.pop(key, None)
        return removed

    def _exists(self, key: str) -> bool:
        return key in self.values or key in self.lists or key in self.sets

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.values.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        self._check()
        self.values[key] = value
        if ttl_seconds:
            self.expiry[key] = self.clock() + ttl_seconds
        else:
            self.expiry.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        return sum(1 for key in keys if self._drop(key))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        self._check()
        if not self._exists(key):
            return False
        self.expiry[key] = self.clock() + ttl_seconds
        return True

    async def incr(self, key: str, amount: int = 1) -> int:
        self._check()
        value = int(self.values.get(key) or 0) + amount
        self.values[key] = str(value)
        return value

    async def list_prepend(self, key: str, value: str) -> int:
        self._check()
        items = self.lists.setdefault(key, [])
        items.insert(0, value)
        return len(items)

    async def list_range(self, key: str, start: int, stop: int) -> List[str]:
        self._check()
        items = self.lists.get(key, [])
        end = None if stop == -1 else stop + 1
        return list(items[start:end])

    async def list_trim(self, key: str, start: int, stop: int) -> bool:
        self._check()
        if key in self.lists:
            end = None if stop == -1 else stop + 1
            self.lists[key] = self.lists[key][start:end]
        return True

    async def set_add(self, key: str, *members: str) -> int:
        self._check()
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(members)
        return len(bucket) - before

    async def set_remove(self, key: str, *members: str) -> int:
        self._check()
        bucket = self.sets.get(key, set())
        removed = bucket.intersection(members)
        bucket.difference_update(members)
        return len(removed)

    async def set_members(self, key: str) -> List[str]:
        self._check()
        return sorted(self.sets.get(key, set()))

    async def set_is_member(self, key: str, member: str) -> bool:
        self._check()
        return member in self.sets.get(key, set())

    async def keys_by_pattern(self, pattern: str) -> List[str]:
        self._check()
        keys = set(self.values) | set(self.lists) | set(self.sets)
        return sorted(key for key in keys if fnmatch.fnmatchcase(key, pattern))

    async def ping(self) -> bool:
        self._check()
        return True

    async def close(self) -> None:
        return None


class ScriptedSearchBackend:
    """Search backend replaying a per-engine script of results and exceptions.

    Each engine maps to a list consumed one step per call; the last step
    repeats once the script runs out. A step is a list of tracks, an
    exception instance, or an awaitable factory for slow responses.
    """

    def __init__(self, script: Dict[str, Sequence[object]]):
        self.script = {engine: list(steps) for engine, steps in script.items()}
        self.calls: List[str] = []
        self.queries: List[str] = []

    async def search(self, query: str, *, requested_by: Optional[int], engine: str) -> SearchResult:
        self.calls.append(engine)
        self.queries.append(query)
        steps = self.script.get(engine) or [[]]
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if callable(step):
            step = await step()
        if isinstance(step, BaseException):
            raise step
        return SearchResult(tracks=list(step))


def make_track(
    external_id: Optional[str],
    title: str = "Some Song",
    author: str = "Some Artist",
    *,
    url: Optional[str] = None,
    view_count: int = 0,
) -> TrackRef:
    return TrackRef(
        url=url if url is not None else f"https://example.com/watch?v={external_id}",
        title=title,
        author=author,
        duration_seconds=200,
        external_id=external_id,
        view_count=view_count,
    )
