"""Track value types plus title normalisation and tag extraction helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from rapidfuzz.distance import Levenshtein

from autoplay_engine.configs.title_patterns import (
    ACOUSTIC_PATTERN,
    GENRE_KEYWORDS,
    LIVE_PATTERN,
    MARKETING_BRACKET,
    MARKETING_SUFFIXES,
    VARIANT_PATTERNS,
    YEAR_PATTERN,
)

_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")
_TOPIC_SUFFIX = re.compile(r"\s*-\s*topic$", re.IGNORECASE)

LIVE_TAG = "live"
ACOUSTIC_TAG = "acoustic"


@dataclass(frozen=True)
class TrackRef:
    """Immutable reference to a playable track produced by a search backend."""

    url: str
    title: str
    author: str
    duration_seconds: int = 0
    thumbnail: Optional[str] = None
    external_id: Optional[str] = None
    view_count: int = 0
    # Backend-native track object (e.g. ``lavalink.AudioTrack``) used when enqueueing.
    source: Any = field(default=None, compare=False, repr=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "author": self.author,
            "durationSeconds": self.duration_seconds,
            "thumbnail": self.thumbnail,
            "externalId": self.external_id,
            "viewCount": self.view_count,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TrackRef":
        return cls(
            url=str(payload.get("url") or ""),
            title=str(payload.get("title") or ""),
            author=str(payload.get("author") or ""),
            duration_seconds=int(payload.get("durationSeconds") or 0),
            thumbnail=payload.get("thumbnail"),
            external_id=payload.get("externalId"),
            view_count=int(payload.get("viewCount") or 0),
        )

    @classmethod
    def from_lavalink(cls, track: Any) -> "TrackRef":
        """Build a reference from a Lavalink ``AudioTrack``-like object."""
        duration_ms = getattr(track, "duration", 0) or 0
        return cls(
            url=getattr(track, "uri", None) or "",
            title=getattr(track, "title", None) or "Unknown Title",
            author=getattr(track, "author", None) or "Unknown Artist",
            duration_seconds=max(0, int(duration_ms) // 1000),
            thumbnail=getattr(track, "artwork_url", None),
            external_id=getattr(track, "identifier", None) or None,
            source=track,
        )


@dataclass(frozen=True)
class TrackMetadata:
    """Tags and popularity derived once per track, used to seed related searches."""

    artist: str
    tags: FrozenSet[str] = frozenset()
    view_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"artist": self.artist, "tags": sorted(self.tags), "views": self.view_count}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TrackMetadata":
        return cls(
            artist=str(payload.get("artist") or ""),
            tags=frozenset(str(tag) for tag in payload.get("tags") or ()),
            view_count=int(payload.get("views") or 0),
        )


def normalize_title(title: Optional[str]) -> str:
    """Reduce a title to lower-case alphanumerics without marketing noise.

    Bracketed groups such as ``(Official Video)`` or ``[Remastered 2011]`` are
    removed whole; any other bracketed words are kept so ``song a (live)`` and
    ``Song A - Live`` normalise identically.
    """
    if not title:
        return ""
    text = title.lower()
    text = MARKETING_BRACKET.sub(" ", text)
    for pattern in MARKETING_SUFFIXES:
        text = pattern.sub(" ", text)
    return _NON_ALNUM.sub("", text)


def normalize_author(author: Optional[str]) -> str:
    if not author:
        return ""
    text = _TOPIC_SUFFIX.sub("", author.strip())
    return _WHITESPACE.sub(" ", text).lower()


def levenshtein_distance(first: str, second: str) -> int:
    """Unit-cost insert/delete/substitute edit distance."""
    return Levenshtein.distance(first, second)


def title_similarity(first: str, second: str) -> float:
    """Return ``(maxLen - editDistance) / maxLen`` for two normalised strings."""
    max_len = max(len(first), len(second))
    if max_len == 0:
        return 1.0
    return (max_len - levenshtein_distance(first, second)) / max_len


def is_variant_title(title: Optional[str]) -> bool:
    """Whether ``title`` looks like a remix, live take, remaster, cover or similar."""
    if not title:
        return False
    return any(pattern.search(title) for pattern in VARIANT_PATTERNS)


def _genre_tags(text: str) -> set:
    found = set()
    for keyword in GENRE_KEYWORDS:
        if re.search(rf"(?<!\w){re.escape(keyword)}(?!\w)", text):
            found.add(keyword)
    return found


def extract_metadata(track: TrackRef) -> TrackMetadata:
    """Derive :class:`TrackMetadata` tags from a track's title and author."""
    title = (track.title or "").lower()
    author = normalize_author(track.author)

    tags = _genre_tags(f"{title} {author}")
    if author:
        tags.add(author)
    year = YEAR_PATTERN.search(title)
    if year:
        tags.add(year.group(0))
    if LIVE_PATTERN.search(title):
        tags.add(LIVE_TAG)
    if ACOUSTIC_PATTERN.search(title):
        tags.add(ACOUSTIC_TAG)

    return TrackMetadata(artist=track.author or "", tags=frozenset(tags), view_count=track.view_count or 0)
