"""TMDB API client: external-id resolution and title metadata."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any

import httpx
import structlog

from streamrelay.domain.entities.media import MediaDescriptor, MediaQuery, NotFound
from streamrelay.domain.exceptions import (
    MalformedResponseError,
    TransientUpstreamError,
)
from streamrelay.infrastructure.common.retry import RetryPolicy, retry_async

log = structlog.get_logger(__name__)

_BASE_URL = "https://api.themoviedb.org/3"

# TMDB error envelope code for "The resource you requested could not be found."
_STATUS_RESOURCE_NOT_FOUND = 34


def _parse_date(value: Any) -> date | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


class HttpxTmdbClient:
    """Async TMDB client using httpx.

    Implements ``MetadataClientPort`` from domain.ports.metadata.
    Read access tokens (v4, JWT shaped) are sent as a Bearer header,
    classic v3 keys as the ``api_key`` query parameter.
    """

    def __init__(
        self,
        *,
        api_key: str,
        http_client: httpx.AsyncClient,
        retry_policy: RetryPolicy | None = None,
        language: str = "en-US",
        base_url: str = _BASE_URL,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._api_key = api_key
        self._http = http_client
        self._retry = retry_policy or RetryPolicy()
        self._language = language
        self._base_url = base_url.rstrip("/")
        self._today = today

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @property
    def _uses_bearer(self) -> bool:
        return self._api_key.startswith("eyJ")

    def _params(self, **extra: Any) -> dict[str, Any]:
        params: dict[str, Any] = {"language": self._language, **extra}
        if not self._uses_bearer:
            params["api_key"] = self._api_key
        return params

    def _headers(self) -> dict[str, str]:
        if self._uses_bearer:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    async def _get_once(
        self, path: str, params: dict[str, Any]
    ) -> dict[str, Any] | NotFound:
        try:
            resp = await self._http.get(
                f"{self._base_url}{path}", params=params, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            raise TransientUpstreamError(f"TMDB request failed: {exc}") from exc

        if resp.status_code == 404:
            log.debug("tmdb_resource_not_found", path=path)
            return NotFound(f"TMDB has no resource at {path}")
        if resp.status_code == 401:
            log.error("tmdb_api_key_invalid", status=401)
        if resp.status_code >= 400:
            raise TransientUpstreamError(
                f"TMDB returned HTTP {resp.status_code} for {path}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponseError(
                f"TMDB returned invalid JSON for {path}"
            ) from exc
        if not isinstance(data, dict):
            raise MalformedResponseError(f"TMDB returned a non-object for {path}")

        if data.get("success") is False:
            if data.get("status_code") == _STATUS_RESOURCE_NOT_FOUND:
                return NotFound(data.get("status_message") or "not found")
            raise TransientUpstreamError(
                data.get("status_message") or f"TMDB error for {path}",
                status_code=resp.status_code,
            )
        return data

    async def _get(self, path: str, **extra: Any) -> dict[str, Any] | NotFound:
        """GET with retry. Returns parsed JSON or NotFound."""
        params = self._params(**extra)
        return await retry_async(
            lambda: self._get_once(path, params),
            policy=self._retry,
            context=f"tmdb:{path}",
        )

    def _is_unreleased(self, released: date | None) -> bool:
        return released is not None and released > self._today()

    # ------------------------------------------------------------------
    # Public API (MetadataClientPort)
    # ------------------------------------------------------------------

    async def resolve(self, query: MediaQuery) -> int | NotFound:
        """Map an IMDb id to a TMDB id via ``/find``."""
        if query.kind == "series" and not (
            query.season is not None
            and query.episode is not None
            and query.season > 0
            and query.episode > 0
        ):
            return NotFound("season and episode must be positive integers")

        data = await self._get(f"/find/{query.external_id}", external_source="imdb_id")
        if isinstance(data, NotFound):
            return data

        results_key = "movie_results" if query.kind == "movie" else "tv_results"
        results = data.get(results_key) or []
        if not results:
            log.info(
                "tmdb_id_not_found",
                external_id=query.external_id,
                kind=query.kind,
            )
            return NotFound(f"no {query.kind} for {query.external_id}")

        tmdb_id = results[0].get("id") if isinstance(results[0], dict) else None
        if not isinstance(tmdb_id, int):
            raise MalformedResponseError(
                f"TMDB /find result without id: {results[0]!r}"
            )
        return tmdb_id

    async def describe(
        self, query: MediaQuery, internal_id: int
    ) -> MediaDescriptor | NotFound:
        """Fetch title and release year; unreleased titles are NotFound."""
        if query.kind == "movie":
            return await self._describe_movie(query, internal_id)
        return await self._describe_episode(query, internal_id)

    async def _describe_movie(
        self, query: MediaQuery, tmdb_id: int
    ) -> MediaDescriptor | NotFound:
        data = await self._get(f"/movie/{tmdb_id}")
        if isinstance(data, NotFound):
            return data

        title = data.get("original_title") or data.get("title")
        if not title:
            raise MalformedResponseError(f"TMDB movie {tmdb_id} has no title")

        released = _parse_date(data.get("release_date"))
        if self._is_unreleased(released):
            return NotFound("not released yet")

        return MediaDescriptor(
            title=title,
            release_year=released.year if released else None,
            internal_id=tmdb_id,
            kind="movie",
            external_id=query.external_id,
        )

    async def _describe_episode(
        self, query: MediaQuery, tmdb_id: int
    ) -> MediaDescriptor | NotFound:
        episode = await self._get(
            f"/tv/{tmdb_id}/season/{query.season}/episode/{query.episode}",
            append_to_response="external_ids",
        )
        if isinstance(episode, NotFound):
            return episode

        aired = _parse_date(episode.get("air_date"))
        if self._is_unreleased(aired):
            return NotFound("not released yet")

        show = await self._get(f"/tv/{tmdb_id}")
        if isinstance(show, NotFound):
            return show

        name = show.get("name") or show.get("original_name")
        if not name:
            raise MalformedResponseError(f"TMDB show {tmdb_id} has no name")

        return MediaDescriptor(
            title=name,
            release_year=aired.year if aired else None,
            internal_id=tmdb_id,
            kind="series",
            season=query.season,
            episode=query.episode,
            external_id=query.external_id,
            episode_title=episode.get("name") or f"Episode {query.episode}",
        )
