"""HLS/TS relay endpoints.

``/m3u8-proxy`` fetches and rewrites playlists, ``/ts-proxy`` streams
segments. Both take ``url`` (percent-encoded) and an optional ``headers``
JSON object applied to the upstream request.
"""

from __future__ import annotations

from typing import cast

import httpx
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.responses import Response

from streamrelay.domain.exceptions import InvalidRelayParameters
from streamrelay.infrastructure.relay.hls_proxy import (
    fetch_playlist,
    forwardable_headers,
    open_segment,
    parse_headers_param,
    raw_query_param,
    rewrite_playlist,
)
from streamrelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["relay"])

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
}

_PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"


def _error(status_code: int, message: str) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=status_code, headers=_CORS_HEADERS)


def _relay_params(request: Request) -> tuple[str | None, dict[str, str]]:
    """Read ``url`` and ``headers`` from the raw query string.

    Raises:
        InvalidRelayParameters: ``headers`` is not a JSON object.
    """
    query = request.url.query
    headers = parse_headers_param(raw_query_param(query, "headers"))
    return raw_query_param(query, "url"), headers


def _relay_base(request: Request) -> str:
    state = cast(AppState, request.app.state)
    return state.config.relay.public_url or str(request.base_url).rstrip("/")


@router.get("/m3u8-proxy")
async def relay_playlist(request: Request) -> Response:
    """Fetch a playlist and point all of its references back at the relay."""
    state = cast(AppState, request.app.state)
    try:
        url, headers = _relay_params(request)
    except InvalidRelayParameters as exc:
        return _error(500, str(exc))
    if not url:
        return _error(400, "missing url parameter")

    try:
        resp = await fetch_playlist(
            state.http_client,
            url,
            headers,
            timeout=state.config.relay.timeout_seconds,
        )
    except httpx.TransportError as exc:
        log.warning("relay_upstream_error", url=url, error=str(exc))
        return _error(502, f"upstream unreachable: {exc}")
    except Exception as exc:
        log.error("relay_playlist_failed", url=url, exc_info=True)
        return _error(500, str(exc))

    if not resp.is_success:
        log.info("relay_upstream_status", url=url, status=resp.status_code)
        return Response(
            content=resp.content,
            status_code=resp.status_code,
            media_type=resp.headers.get("content-type"),
            headers=_CORS_HEADERS,
        )

    body = resp.text
    if not body.lstrip().startswith("#EXTM3U"):
        # Not a playlist; pass through untouched.
        return Response(
            content=resp.content,
            media_type=resp.headers.get("content-type"),
            headers=_CORS_HEADERS,
        )

    rewritten = rewrite_playlist(
        body,
        playlist_url=str(resp.url),
        relay_base=_relay_base(request),
        headers=headers,
    )
    return Response(
        content=rewritten,
        media_type=resp.headers.get("content-type", _PLAYLIST_MEDIA_TYPE),
        headers=_CORS_HEADERS,
    )


@router.get("/ts-proxy")
async def relay_segment(request: Request) -> Response:
    """Stream a segment, forwarding upstream status and content headers."""
    state = cast(AppState, request.app.state)
    try:
        url, headers = _relay_params(request)
    except InvalidRelayParameters as exc:
        return _error(500, str(exc))
    if not url:
        return _error(400, "missing url parameter")

    try:
        resp, body = await open_segment(
            state.http_client,
            url,
            headers,
            timeout=state.config.relay.timeout_seconds,
        )
    except httpx.TransportError as exc:
        log.warning("relay_upstream_error", url=url, error=str(exc))
        return _error(502, f"upstream unreachable: {exc}")
    except Exception as exc:
        log.error("relay_segment_failed", url=url, exc_info=True)
        return _error(500, str(exc))

    return StreamingResponse(
        body,
        status_code=resp.status_code,
        headers={**forwardable_headers(resp.headers), **_CORS_HEADERS},
    )


@router.options("/{path:path}")
async def relay_preflight(request: Request, path: str) -> Response:
    """CORS preflight for any path."""
    requested = request.headers.get("access-control-request-headers", "*")
    return Response(
        status_code=200,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
            "Access-Control-Allow-Headers": requested,
        },
    )


@router.get("/{path:path}")
async def relay_unroutable(path: str) -> Response:
    """Anything else is not a relay target."""
    host = path.split("/", 1)[0]
    return _error(404, f"Invalid host: {host}")
