"""HDRezka: three-stage site scraping (search, translator, stream manifest).

Each stage is an independent retried request. Parsing lives in
``hdrezka_parser``; this module only does I/O and sequencing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urljoin

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from streamrelay.domain.entities.media import (
    MediaDescriptor,
    MediaType,
    NotFound,
    ProviderStreams,
    RawStreamFile,
)
from streamrelay.domain.exceptions import MalformedResponseError
from streamrelay.domain.ports.token_generator import TokenGeneratorPort
from streamrelay.infrastructure.common.retry import RetryPolicy
from streamrelay.infrastructure.common.tokens import UuidTokenGenerator

from .base import HttpxProviderBase
from .hdrezka_parser import (
    SearchItem,
    parse_search_results,
    parse_subtitles,
    parse_translator_id,
    parse_video_links,
    select_search_item,
)


class _CdnEnvelope(BaseModel):
    """Response of ``/ajax/get_cdn_series/``."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    url: Union[str, bool, None] = None
    subtitle: Union[str, bool, None] = None
    message: Optional[str] = None


@dataclass
class ScrapeSession:
    """Per-request scraping state; never shared between requests."""

    descriptor: MediaDescriptor
    search_match: SearchItem | None = None
    translator_id: str | None = None
    envelope: _CdnEnvelope | None = None

    def require_match(self) -> SearchItem:
        if self.search_match is None:
            raise RuntimeError("search stage has not matched")
        return self.search_match


def _media_type(url: str) -> MediaType:
    if ".m3u8" in url:
        return "hls"
    if ".mp4" in url:
        return "mp4"
    return "url"


class HdrezkaProvider(HttpxProviderBase):
    """Implements ``StreamProviderPort`` by scraping HDRezka."""

    name = "hdrezka"

    _default_headers = {  # noqa: RUF012
        "X-Hdrezka-Android-App": "1",
        "X-Hdrezka-Android-App-Version": "2.2.0",
    }

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        base_url: str,
        retry_policy: RetryPolicy | None = None,
        token_generator: TokenGeneratorPort | None = None,
    ) -> None:
        super().__init__(
            http_client=http_client, base_url=base_url, retry_policy=retry_policy
        )
        self._tokens = token_generator or UuidTokenGenerator()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _search(self, session: ScrapeSession) -> NotFound | None:
        descriptor = session.descriptor
        resp = await self._fetch(
            f"{self.base_url}/engine/ajax/search.php",
            params={"q": descriptor.title},
            context="search",
        )
        match = select_search_item(
            parse_search_results(resp.text),
            year=descriptor.release_year,
            kind=descriptor.kind,
        )
        if isinstance(match, NotFound):
            return match
        session.search_match = match
        return None

    async def _resolve_translator(self, session: ScrapeSession) -> NotFound | None:
        item = session.require_match()
        resp = await self._fetch(
            urljoin(f"{self.base_url}/", item.url), context="details"
        )
        translator = parse_translator_id(resp.text, item_id=item.id, kind=item.kind)
        if isinstance(translator, NotFound):
            return translator
        session.translator_id = translator
        return None

    async def _fetch_manifest(self, session: ScrapeSession) -> None:
        descriptor = session.descriptor
        item = session.require_match()
        if session.translator_id is None:
            raise RuntimeError("translator not resolved")
        form: dict[str, str] = {
            "id": item.id,
            "translator_id": session.translator_id,
            "favs": self._tokens.new_token(),
        }
        if item.kind == "series":
            form["season"] = str(descriptor.season or 1)
            form["episode"] = str(descriptor.episode or 1)
            form["action"] = "get_stream"
        else:
            form["action"] = "get_movie"

        resp = await self._fetch(
            f"{self.base_url}/ajax/get_cdn_series/",
            method="POST",
            params={"t": int(time.time() * 1000)},
            data=form,
            context="stream",
        )
        try:
            session.envelope = _CdnEnvelope.model_validate(
                self._parse_json(resp, context="stream")
            )
        except ValidationError as exc:
            raise MalformedResponseError(f"hdrezka stream envelope: {exc}") from exc

    # ------------------------------------------------------------------
    # StreamProviderPort
    # ------------------------------------------------------------------

    async def fetch_streams(
        self, descriptor: MediaDescriptor
    ) -> list[ProviderStreams]:
        session = ScrapeSession(descriptor=descriptor)

        missing = await self._search(session)
        if missing is not None:
            self._log.info(
                "hdrezka_no_match", title=descriptor.title, reason=missing.reason
            )
            return []
        item = session.require_match()

        missing = await self._resolve_translator(session)
        if missing is not None:
            self._log.info(
                "hdrezka_no_translator", item_id=item.id, reason=missing.reason
            )
            return []

        await self._fetch_manifest(session)
        envelope = session.envelope
        if envelope is None or not envelope.success:
            self._log.info(
                "hdrezka_stream_unavailable",
                item_id=item.id,
                message=envelope.message if envelope else None,
            )
            return []

        video_links = envelope.url if isinstance(envelope.url, str) else None
        links = parse_video_links(video_links)
        if not links:
            return []

        files = tuple(
            RawStreamFile(url=url, declared_quality=label, media_type=_media_type(url))
            for label, url in links.items()
        )
        self._log.info(
            "hdrezka_streams",
            item_id=item.id,
            translator_id=session.translator_id,
            qualities=list(links),
        )
        return [
            ProviderStreams(
                provider_name=self.name,
                files=files,
                subtitles=tuple(parse_subtitles(envelope.subtitle)),
                headers={"Referer": f"{self.base_url}/"},
            )
        ]
