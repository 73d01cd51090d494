"""Key-value backend used for history, metadata and rate limit state."""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import redis.asyncio as redis
from redis import RedisError

from autoplay_engine.configs.schema import RedisConfig
from autoplay_engine.utils.exceptions import KeyValueUnavailableError


class KeyValueStore(Protocol):
    """Primitives the engine needs from its backing store.

    Implementations raise :class:`KeyValueUnavailableError` when the backend
    cannot be reached; callers decide how to degrade.
    """

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool: ...

    async def delete(self, *keys: str) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> bool: ...

    async def incr(self, key: str, amount: int = 1) -> int: ...

    async def list_prepend(self, key: str, value: str) -> int: ...

    async def list_range(self, key: str, start: int, stop: int) -> List[str]: ...

    async def list_trim(self, key: str, start: int, stop: int) -> bool: ...

    async def set_add(self, key: str, *members: str) -> int: ...

    async def set_remove(self, key: str, *members: str) -> int: ...

    async def set_members(self, key: str) -> List[str]: ...

    async def set_is_member(self, key: str, member: str) -> bool: ...

    async def keys_by_pattern(self, pattern: str) -> List[str]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...

class RedisKeyValueStore:
    """:class:`KeyValueStore` over a pooled ``redis.asyncio`` client."""

    def __init__(self, config: RedisConfig, *, client: Optional[redis.Redis] = None):
        self.config = config
        self.logger = logging.getLogger("AutoplayEngine.KeyValue")
        self._redis = client or redis.Redis(
            host=config.host,
            port=config.port,
            password=config.password or None,
            db=config.db,
            decode_responses=True,
        )

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"GET {key} failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        try:
            if ttl_seconds:
                return bool(await self._redis.set(key, value, ex=max(1, int(ttl_seconds))))
            return bool(await self._redis.set(key, value))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"SET {key} failed: {exc}") from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._redis.delete(*keys))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"DEL failed: {exc}") from exc

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self._redis.expire(key, max(1, int(ttl_seconds))))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"EXPIRE {key} failed: {exc}") from exc

    async def incr(self, key: str, amount: int = 1) -> int:
        try:
            return int(await self._redis.incrby(key, amount))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"INCRBY {key} failed: {exc}") from exc

    async def list_prepend(self, key: str, value: str) -> int:
        try:
            return int(await self._redis.lpush(key, value))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"LPUSH {key} failed: {exc}") from exc

    async def list_range(self, key: str, start: int, stop: int) -> List[str]:
        try:
            return list(await self._redis.lrange(key, start, stop))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"LRANGE {key} failed: {exc}") from exc

    async def list_trim(self, key: str, start: int, stop: int) -> bool:
        try:
            return bool(await self._redis.ltrim(key, start, stop))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"LTRIM {key} failed: {exc}") from exc

    async def set_add(self, key: str, *members: str) -> int:
        if not members:
            return 0
        try:
            return int(await self._redis.sadd(key, *members))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"SADD {key} failed: {exc}") from exc

    async def set_remove(self, key: str, *members: str) -> int:
        if not members:
            return 0
        try:
            return int(await self._redis.srem(key, *members))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"SREM {key} failed: {exc}") from exc

    async def set_members(self, key: str) -> List[str]:
        try:
            return sorted(await self._redis.smembers(key))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"SMEMBERS {key} failed: {exc}") from exc

    async def set_is_member(self, key: str, member: str) -> bool:
        try:
            return bool(await self._redis.sismember(key, member))
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"SISMEMBER {key} failed: {exc}") from exc

    async def keys_by_pattern(self, pattern: str) -> List[str]:
        try:
            return [key async for key in self._redis.scan_iter(match=pattern, count=200)]
        except (RedisError, OSError) as exc:
            raise KeyValueUnavailableError(f"SCAN {pattern} failed: {exc}") from exc

    async def ping(self) -> bool:
        """Check connectivity with Redis."""
        try:
            await self._redis.ping()
        except (RedisError, OSError) as exc:  # pragma: no cover - network call
            self.logger.error("Key-value storage ping failed: %s", exc)
            raise KeyValueUnavailableError(str(exc)) from exc
        self.logger.info(
            "Key-value storage reachable at %s:%s db=%s",
            self.config.host,
            self.config.port,
            self.config.db,
        )
        return True

    async def close(self) -> None:
        """Close Redis connections."""
        try:
            await self._redis.aclose()
            await self._redis.connection_pool.disconnect()
        except RedisError:
            pass
