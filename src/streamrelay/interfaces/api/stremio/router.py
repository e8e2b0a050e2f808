"""Stremio addon API endpoints (manifest, stream)."""

from __future__ import annotations

import re
from typing import Any, cast

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from streamrelay.domain.entities.media import (
    MediaQuery,
    ResolvedStreamSet,
    StreamDescriptor,
)
from streamrelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["stremio"])

_ADDON_ID = "org.streamrelay"
_ADDON_VERSION = "0.1.0"

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
}

_MOVIE_ID = re.compile(r"^(tt\d+)$")
_EPISODE_ID = re.compile(r"^(tt\d+):(\d+):(\d+)$")


def _build_manifest() -> dict[str, Any]:
    """Build the Stremio addon manifest."""
    return {
        "id": _ADDON_ID,
        "version": _ADDON_VERSION,
        "name": "StreamRelay",
        "description": "Movie and series streams from multiple embed sources",
        "resources": [
            {"name": "stream", "types": ["movie", "series"], "idPrefixes": ["tt"]}
        ],
        "types": ["movie", "series"],
        "idPrefixes": ["tt"],
        "catalogs": [],
        "behaviorHints": {
            "adult": False,
            "p2p": False,
            "configurable": False,
        },
    }


def _parse_stream_id(content_type: str, raw_id: str) -> MediaQuery | None:
    """Parse a Stremio stream id into a MediaQuery.

    Movies: "tt1234567"
    Series: "tt1234567:1:5" (season 1, episode 5)
    """
    if content_type == "movie":
        match = _MOVIE_ID.match(raw_id)
        return MediaQuery(external_id=match.group(1), kind="movie") if match else None

    if content_type == "series":
        match = _EPISODE_ID.match(raw_id)
        if not match:
            return None
        return MediaQuery(
            external_id=match.group(1),
            kind="series",
            season=int(match.group(2)),
            episode=int(match.group(3)),
        )
    return None


def _format_stream(stream: StreamDescriptor) -> dict[str, Any]:
    """Convert a StreamDescriptor to Stremio JSON format."""
    payload: dict[str, Any] = {
        "title": stream.display_title,
        "url": stream.playback_url,
        "name": stream.provider_name,
        "type": stream.media_type or "url",
        "qualityLabel": stream.quality_label,
        "language": stream.language_code or "unknown",
        "behaviorHints": {
            "headers": dict(stream.required_headers),
            "notWebReady": True,
        },
    }
    if stream.subtitles:
        payload["subtitles"] = [
            {"url": sub.url, "lang": sub.language_code} for sub in stream.subtitles
        ]
    return payload


def _cache_control(result: ResolvedStreamSet) -> str:
    return (
        f"max-age={result.cache_max_age}, "
        f"stale-while-revalidate={result.stale_revalidate_age}, "
        f"stale-if-error={result.stale_error_age}, public"
    )


def _stream_response(result: ResolvedStreamSet) -> JSONResponse:
    return JSONResponse(
        content={
            "streams": [_format_stream(s) for s in result.streams],
            "cacheMaxAge": result.cache_max_age,
            "staleRevalidate": result.stale_revalidate_age,
            "staleError": result.stale_error_age,
        },
        headers={**_CORS_HEADERS, "Cache-Control": _cache_control(result)},
    )


@router.get("/manifest.json")
async def stremio_manifest() -> JSONResponse:
    """Serve the Stremio addon manifest."""
    return JSONResponse(content=_build_manifest(), headers=_CORS_HEADERS)


@router.get("/stream/{content_type}/{stream_id}.json")
async def stremio_stream(
    request: Request,
    content_type: str,
    stream_id: str,
) -> JSONResponse:
    """Resolve streams for a movie or episode.

    Invalid ids get an empty list with the short cache window.
    """
    state = cast(AppState, request.app.state)
    use_case = state.resolve_streams_uc

    query = _parse_stream_id(content_type, stream_id)
    if query is None:
        log.info("stream_id_rejected", content_type=content_type, stream_id=stream_id)
        return _stream_response(use_case.empty())

    log.info(
        "stream_request",
        external_id=query.external_id,
        kind=query.kind,
        season=query.season,
        episode=query.episode,
    )

    relay_base = state.config.relay.public_url or str(request.base_url).rstrip("/")
    result = await use_case.execute(query, relay_base_url=relay_base)
    return _stream_response(result)
