"""Sliding-window rate limiting backed by the shared key-value store."""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from autoplay_engine.configs.schema import RateLimitConfig, RateLimitRuleConfig
from autoplay_engine.services.kv_store import KeyValueStore
from autoplay_engine.utils.exceptions import KeyValueUnavailableError, RateLimitRuleNotFoundError


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time_ms: int
    retry_after: Optional[int] = None


class RateLimitService:
    """Count requests per identifier inside a moving window.

    Timestamps are kept as a JSON list under ``<key_prefix>:<identifier>``.
    The read/prune/append/write sequence is not atomic; a concurrent burst on
    the same key can overshoot the limit by one. Store outages allow the
    request.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.time,
        metrics: Optional[Any] = None,
    ):
        self.store = store
        self.rules: Dict[str, RateLimitRuleConfig] = dict(config.rules)
        self.metrics = metrics
        self.logger = logging.getLogger("AutoplayEngine.RateLimit")
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ------------------------------------------------------------------ rules
    def get_rule(self, rule_name: str) -> RateLimitRuleConfig:
        rule = self.rules.get(rule_name)
        if rule is None:
            raise RateLimitRuleNotFoundError(rule_name)
        return rule

    def add_rule(self, name: str, rule: RateLimitRuleConfig) -> None:
        self.rules[name] = rule

    @staticmethod
    def _key(rule: RateLimitRuleConfig, identifier: str) -> str:
        return f"{rule.key_prefix}:{identifier}"

    async def _load(self, key: str, window_start: int) -> List[int]:
        raw = await self.store.get(key)
        if not raw:
            return []
        try:
            stamps = json.loads(raw)
        except ValueError:
            stamps = None
        if not isinstance(stamps, list):
            self.logger.warning("Discarding corrupt rate limit state at %s", key)
            return []
        return [
            int(stamp)
            for stamp in stamps
            if isinstance(stamp, (int, float))
            and not isinstance(stamp, bool)
            and math.isfinite(stamp)
            and stamp > window_start
        ]

    # ------------------------------------------------------------------ public API
    async def check_and_record(self, identifier: str, rule_name: str) -> RateLimitResult:
        """Record one request for ``identifier`` unless the rule's budget is spent."""
        rule = self.get_rule(rule_name)
        key = self._key(rule, str(identifier))
        now = self._now_ms()
        try:
            stamps = await self._load(key, now - rule.window_ms)
            if len(stamps) >= rule.max_requests:
                oldest = min(stamps)
                reset_time = oldest + rule.window_ms
                retry_after = max(1, math.ceil((reset_time - now) / 1000))
                self.logger.debug("Rate limited %s on rule %s (retry in %ss)", identifier, rule_name, retry_after)
                if self.metrics:
                    self.metrics.record_rate_limited(rule_name)
                return RateLimitResult(False, 0, reset_time, retry_after)

            stamps.append(now)
            await self.store.set(key, json.dumps(stamps), ttl_seconds=max(1, math.ceil(rule.window_ms / 1000)))
            return RateLimitResult(True, rule.max_requests - len(stamps), min(stamps) + rule.window_ms)
        except KeyValueUnavailableError as exc:
            self.logger.error("Rate limit check failed for %s on rule %s: %s", identifier, rule_name, exc)
            return RateLimitResult(True, rule.max_requests, now + rule.window_ms)

    async def get_info(self, identifier: str, rule_name: str) -> RateLimitResult:
        """Report the current budget without recording a request."""
        rule = self.get_rule(rule_name)
        key = self._key(rule, str(identifier))
        now = self._now_ms()
        try:
            stamps = await self._load(key, now - rule.window_ms)
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to read rate limit info for %s on rule %s: %s", identifier, rule_name, exc)
            return RateLimitResult(True, rule.max_requests, now + rule.window_ms)

        remaining = max(0, rule.max_requests - len(stamps))
        reset_time = (min(stamps) if stamps else now) + rule.window_ms
        if remaining == 0:
            return RateLimitResult(False, 0, reset_time, max(1, math.ceil((reset_time - now) / 1000)))
        return RateLimitResult(True, remaining, reset_time)

    async def is_rate_limited(self, identifier: str, rule_name: str) -> bool:
        return not (await self.get_info(identifier, rule_name)).allowed

    async def reset(self, identifier: str, rule_name: str) -> None:
        rule = self.get_rule(rule_name)
        try:
            await self.store.delete(self._key(rule, str(identifier)))
        except KeyValueUnavailableError as exc:
            self.logger.error("Failed to reset rate limit for %s on rule %s: %s", identifier, rule_name, exc)
