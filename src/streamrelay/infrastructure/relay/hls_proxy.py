"""HLS relay helpers: relay URLs, playlist rewriting and upstream fetching.

Many CDNs only serve playlists and segments when a ``Referer`` (or some
other header) is present on every request. A player cannot add those
headers itself, so every reference in a playlist is rewritten to point
back through the relay, carrying the headers as a JSON query parameter.
The relay then fetches each resource server-side with those headers.
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator, Mapping
from urllib.parse import quote, unquote, urljoin, urlsplit

import httpx
import structlog

from streamrelay.domain.exceptions import InvalidRelayParameters

log = structlog.get_logger(__name__)

PLAYLIST_ENDPOINT = "m3u8-proxy"
SEGMENT_ENDPOINT = "ts-proxy"

_URI_ATTRIBUTE = re.compile(r'URI="([^"]+)"')

# Tags whose URI attribute names another playlist (everything else is media).
_PLAYLIST_URI_TAGS: tuple[str, ...] = ("#EXT-X-MEDIA", "#EXT-X-I-FRAME-STREAM-INF")

# Never forwarded: the relay re-frames and decodes the body itself.
_HOP_HEADERS = frozenset({"transfer-encoding", "content-encoding", "connection"})


# ----------------------------------------------------------------------
# Query parameters
# ----------------------------------------------------------------------


def raw_query_param(query_string: str, name: str) -> str | None:
    """Percent-decode a query parameter without turning ``+`` into a space.

    Signed CDN URLs frequently contain literal ``+`` characters that must
    survive the trip through the relay.
    """
    prefix = f"{name}="
    for part in query_string.split("&"):
        if part.startswith(prefix):
            return unquote(part[len(prefix) :])
    return None


def encode_headers_param(headers: Mapping[str, str]) -> str:
    return quote(json.dumps(dict(headers), separators=(",", ":")), safe="")


def parse_headers_param(raw: str | None) -> dict[str, str]:
    """Decode the ``headers`` parameter (already percent-decoded once).

    Raises:
        InvalidRelayParameters: value is not a JSON object.
    """
    if not raw:
        return {}
    try:
        decoded = json.loads(unquote(raw))
    except ValueError as exc:
        raise InvalidRelayParameters(str(exc)) from exc
    if not isinstance(decoded, dict):
        raise InvalidRelayParameters("headers must be a JSON object")
    return {str(key): str(value) for key, value in decoded.items()}


def build_relay_url(
    relay_base: str,
    target_url: str,
    headers: Mapping[str, str] | None = None,
    *,
    endpoint: str = PLAYLIST_ENDPOINT,
) -> str:
    """Build ``{relay_base}/{endpoint}?url=...&headers=...``."""
    link = f"{relay_base.rstrip('/')}/{endpoint}?url={quote(target_url, safe='')}"
    if headers:
        link += f"&headers={encode_headers_param(headers)}"
    return link


def unwrap_relay_url(url: str) -> str:
    """Return the upstream URL behind a playlist relay link, else *url*."""
    parts = urlsplit(url)
    if not parts.path.endswith(f"/{PLAYLIST_ENDPOINT}"):
        return url
    return raw_query_param(parts.query, "url") or url


# ----------------------------------------------------------------------
# Playlist rewriting
# ----------------------------------------------------------------------


def is_master_playlist(content: str) -> bool:
    return "#EXT-X-STREAM-INF" in content


def rewrite_playlist(
    content: str,
    *,
    playlist_url: str,
    relay_base: str,
    headers: Mapping[str, str] | None = None,
) -> str:
    """Point every reference in an M3U8 playlist back through the relay.

    Relative references are resolved against *playlist_url* (the final
    URL after redirects). In a master playlist, variant lines go to the
    playlist endpoint; in a media playlist, segment lines go to the
    segment endpoint. ``URI="..."`` attributes are rewritten too:
    ``#EXT-X-MEDIA`` and ``#EXT-X-I-FRAME-STREAM-INF`` name playlists,
    ``#EXT-X-KEY`` and ``#EXT-X-MAP`` name media.
    """
    master = is_master_playlist(content)

    def relay(reference: str, endpoint: str) -> str:
        absolute = urljoin(playlist_url, reference)
        return build_relay_url(relay_base, absolute, headers, endpoint=endpoint)

    lines: list[str] = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped:
            lines.append(line)
        elif stripped.startswith("#"):
            if 'URI="' in stripped:
                endpoint = (
                    PLAYLIST_ENDPOINT
                    if stripped.startswith(_PLAYLIST_URI_TAGS)
                    else SEGMENT_ENDPOINT
                )
                line = _URI_ATTRIBUTE.sub(
                    lambda m: f'URI="{relay(m.group(1), endpoint)}"', line
                )
            lines.append(line)
        else:
            endpoint = PLAYLIST_ENDPOINT if master else SEGMENT_ENDPOINT
            lines.append(relay(stripped, endpoint))

    rewritten = "\n".join(lines)
    if content.endswith("\n"):
        rewritten += "\n"
    return rewritten


# ----------------------------------------------------------------------
# Upstream fetching
# ----------------------------------------------------------------------


def forwardable_headers(upstream: httpx.Headers) -> dict[str, str]:
    """Response headers to pass on to the player.

    Drops hop-by-hop framing, and ``content-length`` when the upstream
    body was compressed (httpx hands us the decoded bytes).
    """
    encoded = "content-encoding" in upstream
    forwarded: dict[str, str] = {}
    for name, value in upstream.items():
        lowered = name.lower()
        if lowered in _HOP_HEADERS:
            continue
        if encoded and lowered == "content-length":
            continue
        forwarded[name] = value
    return forwarded


async def fetch_playlist(
    http_client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
    *,
    timeout: float,
) -> httpx.Response:
    """GET a playlist (redirects followed) and read the full body.

    The response is returned whatever its status; transport failures
    raise ``httpx.TransportError``.
    """
    resp = await http_client.get(
        url,
        headers=dict(headers),
        follow_redirects=True,
        timeout=timeout,
    )
    log.debug(
        "relay_playlist_fetched",
        url=url,
        status=resp.status_code,
        bytes=len(resp.content),
    )
    return resp


async def open_segment(
    http_client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
    *,
    timeout: float,
) -> tuple[httpx.Response, AsyncIterator[bytes]]:
    """Open a streaming GET for a segment without buffering its body.

    Returns ``(response, byte_iterator)``; the iterator closes the
    response once exhausted.
    """
    resp = await http_client.send(
        http_client.build_request("GET", url, headers=dict(headers), timeout=timeout),
        stream=True,
        follow_redirects=True,
    )

    async def _iter() -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.aiter_bytes(chunk_size=65536):
                yield chunk
        finally:
            await resp.aclose()

    return resp, _iter()
