"""Resilient search across a preferred engine and an ordered fallback cascade."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence

from autoplay_engine.configs.schema import SearchConfig
from autoplay_engine.services.error_classifier import ErrorClassification, ErrorClassifier, ErrorKind
from autoplay_engine.utils.exceptions import UserFacingError
from autoplay_engine.utils.tracks import TrackRef


class SearchState(str, Enum):
    NOT_STARTED = "not_started"
    TRYING_PRIMARY = "trying_primary"
    TRYING_FALLBACK = "trying_fallback"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SearchResult:
    """What a search backend returns for one query."""

    tracks: List[TrackRef] = field(default_factory=list)


class SearchBackend(Protocol):
    async def search(self, query: str, *, requested_by: Optional[int], engine: str) -> SearchResult: ...


@dataclass(frozen=True)
class SearchAttempt:
    engine: str
    phase: SearchState
    error: Optional[str] = None


@dataclass
class SearchOutcome:
    state: SearchState
    tracks: List[TrackRef] = field(default_factory=list)
    engine: Optional[str] = None
    attempts: int = 0
    used_fallback: bool = False
    error: Optional[str] = None
    attempt_log: List[SearchAttempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is SearchState.SUCCEEDED

    def raise_for_error(self) -> None:
        """Raise :class:`UserFacingError` carrying the failure message, if any."""
        if not self.succeeded:
            raise UserFacingError(self.error or "Search failed.")


@dataclass
class _SearchRun:
    query: str
    requester: Optional[int]
    engine: str
    state: SearchState = SearchState.NOT_STARTED
    attempts: int = 0
    log: List[SearchAttempt] = field(default_factory=list)
    last_error: Optional[ErrorClassification] = None


class SearchEngineManager:
    """Resolve queries with bounded retries, backoff and sequential fallbacks.

    The preferred engine is retried with linear backoff on network faults.
    Parser faults, empty results and an exhausted retry budget hand over to
    the fallback cascade, where non-YouTube engines are tried before the
    YouTube family. Unrecognised faults end the search immediately. The whole
    call is bounded by ``overall_timeout_seconds``.
    """

    def __init__(
        self,
        backend: SearchBackend,
        config: SearchConfig,
        *,
        classifier: Optional[ErrorClassifier] = None,
        metrics: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.backend = backend
        self.config = config
        self.classifier = classifier or ErrorClassifier(config.error_patterns, config.messages)
        self.metrics = metrics
        self.logger = logging.getLogger("AutoplayEngine.Search")
        self._sleep = sleep

    def fallback_order(self, preferred_engine: str) -> List[str]:
        """Fallback engines without the preferred one, non-YouTube engines first."""
        youtube = set(self.config.youtube_engines)
        engines = [engine for engine in dict.fromkeys(self.config.fallback_engines) if engine != preferred_engine]
        return [engine for engine in engines if engine not in youtube] + [
            engine for engine in engines if engine in youtube
        ]

    async def resolve(
        self,
        query: str,
        requester: Optional[int] = None,
        preferred_engine: Optional[str] = None,
    ) -> SearchOutcome:
        """Search ``query`` and return a structured outcome; never raises for backend faults."""
        engine = (preferred_engine or self.config.preferred_engine).strip().lower()
        run = _SearchRun(query=query, requester=requester, engine=engine)
        try:
            outcome = await asyncio.wait_for(self._run(run), timeout=self.config.overall_timeout_seconds)
        except asyncio.TimeoutError:
            self.logger.warning(
                "Search timed out after %ss for query '%s' (%d attempts, state=%s)",
                self.config.overall_timeout_seconds,
                query[:100],
                run.attempts,
                run.state.value,
            )
            outcome = SearchOutcome(
                state=SearchState.FAILED,
                attempts=run.attempts,
                error=self.config.messages.timeout,
                attempt_log=list(run.log),
            )
        if self.metrics:
            self.metrics.record_search(outcome)
        return outcome

    # ------------------------------------------------------------------ state machine
    async def _run(self, run: _SearchRun) -> SearchOutcome:
        run.state = SearchState.TRYING_PRIMARY
        outcome = await self._try_primary(run)
        if outcome is not None:
            return outcome
        if self.config.enable_fallbacks:
            outcome = await self._try_fallbacks(run)
            if outcome:
                return outcome

        message = run.last_error.user_message if run.last_error else self.config.messages.no_results
        self.logger.warning(
            "All search attempts failed for query '%s' (%d attempts, last error: %s)",
            run.query[:100],
            run.attempts,
            run.last_error.label if run.last_error else "none",
        )
        return self._failed(run, message)

    async def _try_primary(self, run: _SearchRun) -> Optional[SearchOutcome]:
        """Return the final outcome, or ``None`` to hand the query to the cascade."""
        max_retries = self.config.max_retries
        for attempt in range(1, max_retries + 1):
            run.attempts += 1
            self.logger.debug("Search attempt %d/%d with engine %s", attempt, max_retries, run.engine)
            try:
                tracks = await self._query(run, run.engine)
            except Exception as exc:
                classification = self._record_failure(run, run.engine, exc)
                if classification.should_cascade:
                    return None
                if classification.kind is ErrorKind.FATAL:
                    return self._failed(run, classification.user_message)
                if attempt < max_retries:
                    await self._sleep(self.config.retry_delay_ms * attempt / 1000)
                    continue
                return None

            if tracks:
                return self._succeeded(run, run.engine, tracks, used_fallback=False)
            run.log.append(SearchAttempt(run.engine, SearchState.TRYING_PRIMARY, "empty"))
            return None
        return None

    async def _try_fallbacks(self, run: _SearchRun) -> Optional[SearchOutcome]:
        run.state = SearchState.TRYING_FALLBACK
        engines = self.fallback_order(run.engine)
        self.logger.debug("Trying %d fallback engines for query '%s'", len(engines), run.query[:100])
        for engine in engines:
            run.attempts += 1
            try:
                tracks = await asyncio.wait_for(
                    self._query(run, engine), timeout=self.config.fallback_timeout_seconds
                )
            except Exception as exc:
                self._record_failure(run, engine, exc)
                continue
            if tracks:
                return self._succeeded(run, engine, tracks, used_fallback=True)
            run.log.append(SearchAttempt(engine, SearchState.TRYING_FALLBACK, "empty"))
        return None

    # ------------------------------------------------------------------ helpers
    async def _query(self, run: _SearchRun, engine: str) -> Sequence[TrackRef]:
        result = await self.backend.search(run.query, requested_by=run.requester, engine=engine)
        tracks = list(getattr(result, "tracks", None) or [])
        return tracks[: self.config.result_limit]

    def _record_failure(self, run: _SearchRun, engine: str, exc: Exception) -> ErrorClassification:
        classification = self.classifier.classify(exc)
        run.last_error = classification
        run.log.append(SearchAttempt(engine, run.state, classification.label))
        if classification.is_parser_fault:
            self.logger.warning(
                "Parser fault (%s) from engine %s for query '%s': %s",
                classification.label,
                engine,
                run.query[:100],
                exc,
            )
        else:
            self.logger.error(
                "Search error (%s) from engine %s for query '%s': %s",
                classification.kind.value,
                engine,
                run.query[:100],
                exc,
            )
        return classification

    def _succeeded(self, run: _SearchRun, engine: str, tracks: Sequence[TrackRef], *, used_fallback: bool) -> SearchOutcome:
        run.state = SearchState.SUCCEEDED
        run.log.append(SearchAttempt(engine, SearchState.SUCCEEDED))
        self.logger.debug(
            "Search for '%s' succeeded on %s after %d attempts (fallback=%s)",
            run.query[:100],
            engine,
            run.attempts,
            used_fallback,
        )
        return SearchOutcome(
            state=SearchState.SUCCEEDED,
            tracks=list(tracks),
            engine=engine,
            attempts=run.attempts,
            used_fallback=used_fallback,
            attempt_log=list(run.log),
        )

    @staticmethod
    def _failed(run: _SearchRun, message: str) -> SearchOutcome:
        run.state = SearchState.FAILED
        return SearchOutcome(
            state=SearchState.FAILED,
            attempts=run.attempts,
            error=message,
            attempt_log=list(run.log),
        )
