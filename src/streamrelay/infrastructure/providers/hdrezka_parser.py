"""HDRezka page and response parsing.

Pure functions over strings: no I/O. Empty matches are returned as
``NotFound`` rather than raised.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

from streamrelay.domain.entities.media import MediaKind, NotFound, SubtitleTrack

# Translator id meaning "original audio + subtitles".
ORIGINAL_WITH_SUBTITLES_ID = "238"

LANGUAGE_CODES: dict[str, str] = {
    "Русский": "ru",
    "Українська": "uk",
    "English": "en",
}

_SEARCH_ITEM = re.compile(
    r'<a href="([^"]+)"><span class="enty">([^<]+)</span> \(([^)]+)\)'
)
_ITEM_ID = re.compile(r"/(\d+)-[^/]+\.html$")
_YEAR = re.compile(r"\b(\d{4})\b")
_ORIGINAL_WITH_SUBTITLES_MARKER = f'data-translator_id="{ORIGINAL_WITH_SUBTITLES_ID}"'
_TAGGED_ENTRY = re.compile(r"^\[([^\]]*)\](.*)$", re.DOTALL)
_HTML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SearchItem:
    """One candidate from the site search."""

    id: str
    year: int | None
    kind: MediaKind
    url: str
    title: str


def parse_search_results(page: str) -> list[SearchItem]:
    """Extract candidates from the ajax search response.

    Each hit looks like
    ``<a href="./films/drama/2258-title.html"><span class="enty">Title</span> (1994)``.
    Links under ``/films/`` are movies, everything else is a series.
    """
    items: list[SearchItem] = []
    for url, title, details in _SEARCH_ITEM.findall(page):
        id_match = _ITEM_ID.search(url)
        if not id_match:
            continue
        year_match = _YEAR.search(details)
        items.append(
            SearchItem(
                id=id_match.group(1),
                year=int(year_match.group(1)) if year_match else None,
                kind="movie" if "/films/" in url else "series",
                url=url,
                title=html.unescape(title).strip(),
            )
        )
    return items


def select_search_item(
    items: list[SearchItem],
    *,
    year: int | None,
    kind: MediaKind,
) -> SearchItem | NotFound:
    """Filter by exact year, then by kind; fall back to the first candidate."""
    if not items:
        return NotFound("no search results")

    filtered = [item for item in items if year is not None and item.year == year]
    filtered = [item for item in filtered if item.kind == kind]
    return filtered[0] if filtered else items[0]


def parse_translator_id(page: str, *, item_id: str, kind: MediaKind) -> str | NotFound:
    """Pick the translator (audio/subtitle variant) from a detail page."""
    if _ORIGINAL_WITH_SUBTITLES_MARKER in page:
        return ORIGINAL_WITH_SUBTITLES_ID

    function = "initCDNMoviesEvents" if kind == "movie" else "initCDNSeriesEvents"
    match = re.search(rf"sof\.tv\.{function}\({re.escape(item_id)}, ([^,]+)", page)
    if not match:
        return NotFound(f"no {function} call for item {item_id}")
    return match.group(1).strip()


def _clean_label(label: str) -> str:
    label = _HTML_TAG.sub("", label)
    label = label.replace("&nbsp;", " ").replace("\xa0", " ")
    return _WHITESPACE.sub(" ", label).strip()


def _pick_candidate(candidates: list[str]) -> str:
    for suffix in (".mp4", ".m3u8"):
        for candidate in candidates:
            if suffix in candidate:
                return candidate
    return candidates[0]


def parse_video_links(value: str | None) -> dict[str, str]:
    """Parse ``[label]urlA or urlB,[label]url`` into ``{label: url}``.

    Labels lose HTML tags and ``&nbsp;``. Of several alternatives, a
    direct ``.mp4`` is preferred over an ``.m3u8``. Order is preserved
    and the first entry for a repeated label wins.
    """
    links: dict[str, str] = {}
    if not value:
        return links
    for entry in value.split(","):
        match = _TAGGED_ENTRY.match(entry.strip())
        if not match:
            continue
        label = _clean_label(match.group(1))
        candidates = [c.strip() for c in match.group(2).split(" or ") if c.strip()]
        if not label or not candidates or label in links:
            continue
        links[label] = _pick_candidate(candidates)
    return links


def parse_subtitles(value: str | bool | None) -> list[SubtitleTrack]:
    """Parse ``[Русский]url,[English]url`` into subtitle tracks.

    The site sends ``false`` when there are none.
    """
    if not value or not isinstance(value, str):
        return []
    tracks: list[SubtitleTrack] = []
    for entry in value.split(","):
        match = _TAGGED_ENTRY.match(entry.strip())
        if not match or not match.group(2).strip():
            continue
        label = _clean_label(match.group(1))
        tracks.append(
            SubtitleTrack(
                url=match.group(2).strip(),
                language_code=LANGUAGE_CODES.get(label, label.lower()),
            )
        )
    return tracks
