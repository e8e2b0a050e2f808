"""Turn provider bundles into uniform StreamDescriptors.

Pure transformation logic: no I/O, no framework dependencies.
"""

from __future__ import annotations

import re

from streamrelay.domain.entities.media import (
    ProviderStreams,
    RawStreamFile,
    StreamDescriptor,
)
from streamrelay.infrastructure.relay.hls_proxy import (
    build_relay_url,
    unwrap_relay_url,
)

ADAPTIVE = "adaptive"
UNKNOWN = "unknown"

# Checked in order; the first match wins.
QUALITY_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("2160p", re.compile(r"2160p|4k|uhd", re.IGNORECASE)),
    ("1080p", re.compile(r"1080p|1080|fhd", re.IGNORECASE)),
    ("720p", re.compile(r"720p|720|hd", re.IGNORECASE)),
    ("480p", re.compile(r"480p|480|sd", re.IGNORECASE)),
    ("360p", re.compile(r"360p|360|ld", re.IGNORECASE)),
)

QUALITY_LABELS: tuple[str, ...] = (
    *(label for label, _ in QUALITY_PATTERNS),
    ADAPTIVE,
    UNKNOWN,
)


def _match_quality(text: str) -> str | None:
    for label, pattern in QUALITY_PATTERNS:
        if pattern.search(text):
            return label
    return None


def is_adaptive(media_type: str, url: str) -> bool:
    return media_type == "hls" or ".m3u8" in url


def infer_quality(url: str, *, adaptive: bool = False) -> str:
    """Quality label from a URL alone.

    Always one of ``QUALITY_LABELS``.

    Examples:
        "https://cdn/x/1080p/index.mp4" -> "1080p"
        "https://cdn/x/master.m3u8" (adaptive) -> "adaptive"
        "https://cdn/x/video.mp4" -> "unknown"
    """
    matched = _match_quality(url)
    if matched:
        return matched
    return ADAPTIVE if adaptive else UNKNOWN


def resolve_quality(file: RawStreamFile, upstream_url: str) -> str:
    """Declared quality when recognizable, else inferred from the URL.

    Declared labels are mapped onto the canonical set, so "1080p Ultra"
    and "FHD" both become "1080p".
    """
    if file.declared_quality:
        declared = file.declared_quality.strip()
        if declared.lower() in (ADAPTIVE, "auto"):
            return ADAPTIVE
        matched = _match_quality(declared)
        if matched:
            return matched
    return infer_quality(
        upstream_url, adaptive=is_adaptive(file.media_type, upstream_url)
    )


def normalize_file(
    file: RawStreamFile,
    bundle: ProviderStreams,
    *,
    relay_base_url: str | None,
) -> StreamDescriptor:
    """Build one StreamDescriptor.

    Adaptive files are routed through the relay when *relay_base_url* is
    set, with the bundle's headers embedded. Links that already point at
    this relay are unwrapped first, so normalizing an already-normalized
    URL is stable. Links through any other proxy are played as given.
    """
    upstream_url = file.url
    if relay_base_url and file.url.startswith(f"{relay_base_url.rstrip('/')}/"):
        upstream_url = unwrap_relay_url(file.url)
    quality = resolve_quality(file, unwrap_relay_url(file.url))

    playback_url = upstream_url
    if relay_base_url and is_adaptive(file.media_type, upstream_url):
        playback_url = build_relay_url(relay_base_url, upstream_url, bundle.headers)

    title = f"{bundle.provider_name} {quality} {file.language or ''}".strip()
    return StreamDescriptor(
        display_title=title,
        playback_url=playback_url,
        provider_name=bundle.provider_name,
        media_type=file.media_type,
        quality_label=quality,
        language_code=file.language or UNKNOWN,
        required_headers=dict(bundle.headers),
        subtitles=bundle.subtitles,
    )


def normalize_bundle(
    bundle: ProviderStreams,
    *,
    relay_base_url: str | None = None,
) -> list[StreamDescriptor]:
    """Normalize every file of *bundle*; subtitles apply to all of them."""
    return [
        normalize_file(file, bundle, relay_base_url=relay_base_url)
        for file in bundle.files
        if file.url
    ]
