"""Domain entities for stream resolution.

Pure value objects with no framework dependencies and no I/O.
Every entity is request-scoped; nothing here is cached across requests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

MediaKind = Literal["movie", "series"]
MediaType = Literal["hls", "mp4", "url"]


@dataclass(frozen=True)
class MediaQuery:
    """One client request for streams of a title (or a series episode)."""

    external_id: str  # IMDb id, e.g. "tt0111161"
    kind: MediaKind
    season: int | None = None
    episode: int | None = None


@dataclass(frozen=True)
class MediaDescriptor:
    """Metadata shared read-only by all provider adapters for one request."""

    title: str
    release_year: int | None
    internal_id: int  # TMDB id
    kind: MediaKind
    season: int | None = None
    episode: int | None = None
    external_id: str = ""
    episode_title: str | None = None


@dataclass(frozen=True)
class RawStreamFile:
    """A single playable file as reported by a provider."""

    url: str
    declared_quality: str | None = None
    media_type: MediaType = "url"
    language: str | None = None


@dataclass(frozen=True)
class SubtitleTrack:
    url: str
    language_code: str


@dataclass(frozen=True)
class ProviderStreams:
    """Files contributed by one provider name, with shared subtitles/headers.

    A single adapter may return several bundles when its upstream
    aggregates more than one source.
    """

    provider_name: str
    files: tuple[RawStreamFile, ...] = ()
    subtitles: tuple[SubtitleTrack, ...] = ()
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StreamDescriptor:
    """Normalized stream record. ``playback_url`` is fetchable by a player."""

    display_title: str
    playback_url: str
    provider_name: str
    media_type: MediaType
    quality_label: str
    language_code: str
    required_headers: dict[str, str] = field(default_factory=dict)
    subtitles: tuple[SubtitleTrack, ...] = ()


@dataclass(frozen=True)
class ResolvedStreamSet:
    """Ranked streams plus the cache-control window for the response."""

    streams: tuple[StreamDescriptor, ...]
    cache_max_age: int
    stale_revalidate_age: int
    stale_error_age: int

    @property
    def is_empty(self) -> bool:
        return not self.streams


@dataclass(frozen=True)
class NotFound:
    """Typed "nothing matched" result, returned instead of raised."""

    reason: str = ""
