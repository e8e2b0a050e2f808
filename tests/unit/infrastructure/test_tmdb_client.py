"""Tests for HttpxTmdbClient (TMDB API adapter)."""

from __future__ import annotations

from datetime import date

import httpx
import pytest
import respx

from streamrelay.domain.entities.media import MediaDescriptor, MediaQuery, NotFound
from streamrelay.domain.exceptions import (
    MalformedResponseError,
    TransientUpstreamError,
)
from streamrelay.infrastructure.common.retry import RetryPolicy
from streamrelay.infrastructure.tmdb.client import HttpxTmdbClient

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_API_KEY = "test-api-key-123"
_BEARER_TOKEN = "eyJhbGciOiJIUzI1NiJ9.test.token"
_BASE = "https://api.themoviedb.org/3"


def _today() -> date:
    return date(2024, 6, 1)


@pytest.fixture()
def http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient()


@pytest.fixture()
def client(http_client: httpx.AsyncClient) -> HttpxTmdbClient:
    return HttpxTmdbClient(
        api_key=_API_KEY,
        http_client=http_client,
        retry_policy=RetryPolicy(attempts=1),
        today=_today,
    )


# ---------------------------------------------------------------------------
# TMDB JSON response fixtures
# ---------------------------------------------------------------------------

_FIND_MOVIE_RESPONSE = {
    "movie_results": [{"id": 278, "title": "The Shawshank Redemption"}],
    "tv_results": [],
}

_FIND_TV_RESPONSE = {
    "movie_results": [],
    "tv_results": [{"id": 1399, "name": "Game of Thrones"}],
}

_FIND_EMPTY_RESPONSE = {"movie_results": [], "tv_results": []}

_MOVIE_DETAILS = {
    "id": 278,
    "title": "Die Verurteilten",
    "original_title": "The Shawshank Redemption",
    "release_date": "1994-09-23",
}

_EPISODE_DETAILS = {
    "id": 63087,
    "name": "The Kingsroad",
    "air_date": "2011-04-24",
    "external_ids": {"imdb_id": "tt1668746"},
}

_SHOW_DETAILS = {"id": 1399, "name": "Game of Thrones"}

_NOT_FOUND_ENVELOPE = {
    "success": False,
    "status_code": 34,
    "status_message": "The resource you requested could not be found.",
}


def _movie_query() -> MediaQuery:
    return MediaQuery(external_id="tt0111161", kind="movie")


def _episode_query(season: int | None = 1, episode: int | None = 2) -> MediaQuery:
    return MediaQuery(
        external_id="tt0944947", kind="series", season=season, episode=episode
    )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuthentication:
    @respx.mock
    @pytest.mark.asyncio()
    async def test_v3_key_sent_as_query_param(self, client: HttpxTmdbClient) -> None:
        route = respx.get(f"{_BASE}/find/tt0111161").respond(
            json=_FIND_MOVIE_RESPONSE
        )
        await client.resolve(_movie_query())

        request = route.calls[0].request
        assert request.url.params["api_key"] == _API_KEY
        assert request.url.params["language"] == "en-US"
        assert request.url.params["external_source"] == "imdb_id"
        assert "authorization" not in request.headers

    @respx.mock
    @pytest.mark.asyncio()
    async def test_v4_token_sent_as_bearer(
        self, http_client: httpx.AsyncClient
    ) -> None:
        client = HttpxTmdbClient(
            api_key=_BEARER_TOKEN,
            http_client=http_client,
            retry_policy=RetryPolicy(attempts=1),
        )
        route = respx.get(f"{_BASE}/find/tt0111161").respond(
            json=_FIND_MOVIE_RESPONSE
        )
        await client.resolve(_movie_query())

        request = route.calls[0].request
        assert request.headers["authorization"] == f"Bearer {_BEARER_TOKEN}"
        assert "api_key" not in request.url.params

    @respx.mock
    @pytest.mark.asyncio()
    async def test_custom_language(self, http_client: httpx.AsyncClient) -> None:
        client = HttpxTmdbClient(
            api_key=_API_KEY,
            http_client=http_client,
            retry_policy=RetryPolicy(attempts=1),
            language="ru-RU",
        )
        route = respx.get(f"{_BASE}/find/tt0111161").respond(
            json=_FIND_MOVIE_RESPONSE
        )
        await client.resolve(_movie_query())
        assert route.calls[0].request.url.params["language"] == "ru-RU"


# ---------------------------------------------------------------------------
# resolve()
# ---------------------------------------------------------------------------


class TestResolve:
    @respx.mock
    @pytest.mark.asyncio()
    async def test_movie(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(json=_FIND_MOVIE_RESPONSE)
        assert await client.resolve(_movie_query()) == 278

    @respx.mock
    @pytest.mark.asyncio()
    async def test_series_reads_tv_results(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0944947").respond(json=_FIND_TV_RESPONSE)
        assert await client.resolve(_episode_query()) == 1399

    @respx.mock
    @pytest.mark.asyncio()
    async def test_no_results(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(json=_FIND_EMPTY_RESPONSE)
        result = await client.resolve(_movie_query())
        assert isinstance(result, NotFound)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_movie_id_with_only_tv_results(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(json=_FIND_TV_RESPONSE)
        result = await client.resolve(_movie_query())
        assert isinstance(result, NotFound)

    @pytest.mark.parametrize(
        ("season", "episode"),
        [(None, 1), (1, None), (0, 1), (1, 0), (-1, 3)],
    )
    @respx.mock
    @pytest.mark.asyncio()
    async def test_series_requires_positive_season_and_episode(
        self,
        client: HttpxTmdbClient,
        season: int | None,
        episode: int | None,
    ) -> None:
        route = respx.get(f"{_BASE}/find/tt0944947")
        result = await client.resolve(_episode_query(season, episode))
        assert isinstance(result, NotFound)
        assert not route.called

    @respx.mock
    @pytest.mark.asyncio()
    async def test_http_404_is_not_found(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(status_code=404)
        result = await client.resolve(_movie_query())
        assert isinstance(result, NotFound)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_status_34_envelope_is_not_found(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(json=_NOT_FOUND_ENVELOPE)
        result = await client.resolve(_movie_query())
        assert isinstance(result, NotFound)
        assert "could not be found" in result.reason

    @respx.mock
    @pytest.mark.asyncio()
    async def test_other_error_envelope_is_transient(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(
            json={"success": False, "status_code": 11, "status_message": "Internal"}
        )
        with pytest.raises(TransientUpstreamError):
            await client.resolve(_movie_query())

    @respx.mock
    @pytest.mark.asyncio()
    async def test_server_error_is_transient(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(status_code=503)
        with pytest.raises(TransientUpstreamError) as excinfo:
            await client.resolve(_movie_query())
        assert excinfo.value.status_code == 503

    @respx.mock
    @pytest.mark.asyncio()
    async def test_invalid_key_is_transient(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(status_code=401)
        with pytest.raises(TransientUpstreamError):
            await client.resolve(_movie_query())

    @respx.mock
    @pytest.mark.asyncio()
    async def test_network_error_is_transient(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0111161").mock(
            side_effect=httpx.ConnectError("refused")
        )
        with pytest.raises(TransientUpstreamError):
            await client.resolve(_movie_query())

    @respx.mock
    @pytest.mark.asyncio()
    async def test_invalid_json_is_malformed(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(text="<html>oops</html>")
        with pytest.raises(MalformedResponseError):
            await client.resolve(_movie_query())

    @respx.mock
    @pytest.mark.asyncio()
    async def test_result_without_id_is_malformed(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/find/tt0111161").respond(
            json={"movie_results": [{"title": "x"}], "tv_results": []}
        )
        with pytest.raises(MalformedResponseError):
            await client.resolve(_movie_query())

    @respx.mock
    @pytest.mark.asyncio()
    async def test_transient_failure_is_retried(
        self, http_client: httpx.AsyncClient
    ) -> None:
        client = HttpxTmdbClient(
            api_key=_API_KEY,
            http_client=http_client,
            retry_policy=RetryPolicy(attempts=2, backoff_base=0.0),
        )
        route = respx.get(f"{_BASE}/find/tt0111161").mock(
            side_effect=[
                httpx.Response(502),
                httpx.Response(200, json=_FIND_MOVIE_RESPONSE),
            ]
        )
        assert await client.resolve(_movie_query()) == 278
        assert route.call_count == 2


# ---------------------------------------------------------------------------
# describe()
# ---------------------------------------------------------------------------


class TestDescribeMovie:
    @respx.mock
    @pytest.mark.asyncio()
    async def test_uses_original_title_and_release_year(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/movie/278").respond(json=_MOVIE_DETAILS)
        result = await client.describe(_movie_query(), 278)
        assert result == MediaDescriptor(
            title="The Shawshank Redemption",
            release_year=1994,
            internal_id=278,
            kind="movie",
            external_id="tt0111161",
        )

    @respx.mock
    @pytest.mark.asyncio()
    async def test_falls_back_to_title(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/movie/278").respond(
            json={"id": 278, "title": "Shawshank", "release_date": ""}
        )
        result = await client.describe(_movie_query(), 278)
        assert isinstance(result, MediaDescriptor)
        assert result.title == "Shawshank"
        assert result.release_year is None

    @respx.mock
    @pytest.mark.asyncio()
    async def test_unreleased_is_not_found(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/movie/278").respond(
            json={**_MOVIE_DETAILS, "release_date": "2030-01-01"}
        )
        result = await client.describe(_movie_query(), 278)
        assert isinstance(result, NotFound)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_missing_title_is_malformed(self, client: HttpxTmdbClient) -> None:
        respx.get(f"{_BASE}/movie/278").respond(json={"id": 278})
        with pytest.raises(MalformedResponseError):
            await client.describe(_movie_query(), 278)


class TestDescribeEpisode:
    @respx.mock
    @pytest.mark.asyncio()
    async def test_episode_and_show_name(self, client: HttpxTmdbClient) -> None:
        episode_route = respx.get(f"{_BASE}/tv/1399/season/1/episode/2").respond(
            json=_EPISODE_DETAILS
        )
        respx.get(f"{_BASE}/tv/1399").respond(json=_SHOW_DETAILS)

        result = await client.describe(_episode_query(), 1399)

        assert result == MediaDescriptor(
            title="Game of Thrones",
            release_year=2011,
            internal_id=1399,
            kind="series",
            season=1,
            episode=2,
            external_id="tt0944947",
            episode_title="The Kingsroad",
        )
        params = episode_route.calls[0].request.url.params
        assert params["append_to_response"] == "external_ids"

    @respx.mock
    @pytest.mark.asyncio()
    async def test_unnamed_episode_gets_placeholder(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/tv/1399/season/1/episode/2").respond(
            json={"air_date": "2011-04-24"}
        )
        respx.get(f"{_BASE}/tv/1399").respond(json=_SHOW_DETAILS)
        result = await client.describe(_episode_query(), 1399)
        assert isinstance(result, MediaDescriptor)
        assert result.episode_title == "Episode 2"

    @respx.mock
    @pytest.mark.asyncio()
    async def test_unaired_episode_is_not_found(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/tv/1399/season/1/episode/2").respond(
            json={**_EPISODE_DETAILS, "air_date": "2031-05-05"}
        )
        show_route = respx.get(f"{_BASE}/tv/1399")
        result = await client.describe(_episode_query(), 1399)
        assert isinstance(result, NotFound)
        assert not show_route.called

    @respx.mock
    @pytest.mark.asyncio()
    async def test_missing_episode_is_not_found(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/tv/1399/season/1/episode/2").respond(
            status_code=404, json=_NOT_FOUND_ENVELOPE
        )
        result = await client.describe(_episode_query(), 1399)
        assert isinstance(result, NotFound)

    @respx.mock
    @pytest.mark.asyncio()
    async def test_show_without_name_is_malformed(
        self, client: HttpxTmdbClient
    ) -> None:
        respx.get(f"{_BASE}/tv/1399/season/1/episode/2").respond(
            json=_EPISODE_DETAILS
        )
        respx.get(f"{_BASE}/tv/1399").respond(json={"id": 1399})
        with pytest.raises(MalformedResponseError):
            await client.describe(_episode_query(), 1399)
