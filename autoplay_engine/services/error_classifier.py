"""Heuristic classification of search backend failures."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import aiohttp

from autoplay_engine.configs.schema import ErrorPatternsConfig, SearchMessagesConfig

NETWORK_EXCEPTIONS = (asyncio.TimeoutError, TimeoutError, ConnectionError, aiohttp.ClientConnectionError)

# Parser faults caused by the provider reshaping its pages; the fix is on their side.
_SOURCE_UNAVAILABLE_LABELS = {"CompositeVideoPrimaryInfo", "HypePointsFactoid", "GridShelfView", "SectionHeaderView"}


class ErrorKind(str, Enum):
    PARSER = "parser"
    NETWORK = "network"
    FATAL = "fatal"


@dataclass(frozen=True)
class ErrorClassification:
    """Routing decision for one failed search attempt."""

    kind: ErrorKind
    label: str
    user_message: str

    @property
    def is_parser_fault(self) -> bool:
        return self.kind is ErrorKind.PARSER

    @property
    def should_retry_same_engine(self) -> bool:
        return self.kind is ErrorKind.NETWORK

    @property
    def should_cascade(self) -> bool:
        return self.kind is ErrorKind.PARSER


class ErrorClassifier:
    """Match failures against a swappable pattern table.

    Unknown failures are classified as fatal so they are never retried.
    """

    def __init__(self, patterns: ErrorPatternsConfig, messages: Optional[SearchMessagesConfig] = None):
        self.patterns = patterns
        self.messages = messages or SearchMessagesConfig()

    @staticmethod
    def _haystack(error: BaseException) -> str:
        parts: List[str] = []
        seen = set()
        current: Optional[BaseException] = error
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            kind = type(current)
            parts.append(f"{kind.__module__}.{kind.__name__}: {current}")
            current = current.__cause__ or current.__context__
        return " | ".join(parts).lower()

    def classify(self, error: BaseException) -> ErrorClassification:
        text = self._haystack(error)

        parser_hit = next((pattern for pattern in self.patterns.parser_patterns if pattern in text), None)
        if parser_hit:
            label = self._parser_label(text)
            message = (
                self.messages.source_unavailable
                if label in _SOURCE_UNAVAILABLE_LABELS
                else self.messages.parser_error
            )
            return ErrorClassification(ErrorKind.PARSER, label, message)

        if isinstance(error, NETWORK_EXCEPTIONS):
            return ErrorClassification(ErrorKind.NETWORK, type(error).__name__, self.messages.network_error)

        network_hit = next((pattern for pattern in self.patterns.network_patterns if pattern in text), None)
        if network_hit:
            return ErrorClassification(ErrorKind.NETWORK, network_hit, self.messages.network_error)

        return ErrorClassification(ErrorKind.FATAL, type(error).__name__, self.messages.generic_error)

    def _parser_label(self, text: str) -> str:
        for pattern, label in self.patterns.parser_labels.items():
            if pattern in text:
                return label
        return "Parser"

    def is_recoverable(self, error: BaseException) -> bool:
        classification = self.classify(error)
        return classification.should_retry_same_engine or classification.should_cascade
