"""Embed source API: one JSON endpoint aggregating several sources.

``GET {base}/movie/{tmdbId}`` or ``GET {base}/tv/{tmdbId}?s=&e=`` returns a
list of sources. Each source becomes its own ``ProviderStreams`` bundle,
tagged with the source's provider name.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from streamrelay.domain.entities.media import (
    MediaDescriptor,
    MediaType,
    ProviderStreams,
    RawStreamFile,
    SubtitleTrack,
)
from streamrelay.domain.exceptions import MalformedResponseError

from .base import HttpxProviderBase


class _ApiFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file: str
    type: Optional[str] = None
    quality: Union[str, int, None] = None
    lang: Optional[str] = None


class _ApiSubtitle(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str
    lang: str = "unknown"


class _ApiSource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    provider: str = "unknown"
    files: Optional[list[_ApiFile]] = None
    subtitles: Optional[list[_ApiSubtitle]] = None
    headers: dict[str, str] = Field(default_factory=dict)


def _media_type(file: _ApiFile) -> MediaType:
    declared = (file.type or "").lower()
    if declared == "hls" or (not declared and ".m3u8" in file.file):
        return "hls"
    if declared == "mp4":
        return "mp4"
    return "url"


def _to_bundle(source: _ApiSource) -> ProviderStreams:
    files = tuple(
        RawStreamFile(
            url=f.file,
            declared_quality=str(f.quality) if f.quality not in (None, "") else None,
            media_type=_media_type(f),
            language=f.lang or None,
        )
        for f in source.files or ()
    )
    subtitles = tuple(
        SubtitleTrack(url=s.url, language_code=s.lang) for s in source.subtitles or ()
    )
    return ProviderStreams(
        provider_name=source.provider,
        files=files,
        subtitles=subtitles,
        headers=dict(source.headers),
    )


def parse_sources(payload: Any) -> list[ProviderStreams]:
    """Validate the API payload into provider bundles.

    Entries may wrap the source (``{"source": {...}}``) or be flat.
    Entries carrying an ``ERROR`` key and sources without files are
    skipped.

    Raises:
        MalformedResponseError: payload shape is invalid.
    """
    if not isinstance(payload, list):
        raise MalformedResponseError(
            f"expected a list of sources, got {type(payload).__name__}"
        )

    bundles: list[ProviderStreams] = []
    for entry in payload:
        if not isinstance(entry, dict) or entry.get("ERROR"):
            continue
        raw = entry.get("source", entry)
        try:
            source = _ApiSource.model_validate(raw)
        except ValidationError as exc:
            raise MalformedResponseError(f"invalid source entry: {exc}") from exc
        if not source.files:
            continue
        bundles.append(_to_bundle(source))
    return bundles


class EmbedApiProvider(HttpxProviderBase):
    """Implements ``StreamProviderPort`` on top of the embed source API."""

    name = "embed_api"

    async def fetch_streams(self, descriptor: MediaDescriptor) -> list[ProviderStreams]:
        if descriptor.kind == "movie":
            url = f"{self.base_url}/movie/{descriptor.internal_id}"
            params: dict[str, Any] = {}
        else:
            url = f"{self.base_url}/tv/{descriptor.internal_id}"
            params = {"s": descriptor.season, "e": descriptor.episode}

        resp = await self._fetch(url, params=params, context="sources")
        bundles = parse_sources(self._parse_json(resp, context="sources"))

        self._log.info(
            "embed_api_sources",
            tmdb_id=descriptor.internal_id,
            sources=[b.provider_name for b in bundles],
            files=sum(len(b.files) for b in bundles),
        )
        return bundles
