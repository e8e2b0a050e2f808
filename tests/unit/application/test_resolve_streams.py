"""Tests for ResolveStreamsUseCase (fan-out, failure isolation, cache window)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from streamrelay.application.use_cases.resolve_streams import ResolveStreamsUseCase
from streamrelay.domain.entities.media import (
    MediaDescriptor,
    MediaQuery,
    NotFound,
    ProviderStreams,
    RawStreamFile,
)
from streamrelay.domain.exceptions import (
    MalformedResponseError,
    TransientUpstreamError,
)
from streamrelay.infrastructure.config.schema import ResolutionConfig
from streamrelay.infrastructure.streams.normalizer import normalize_bundle
from streamrelay.infrastructure.streams.stream_sorter import StreamSorter

_RELAY = "http://relay.test"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _metadata(
    descriptor: MediaDescriptor | NotFound,
    internal_id: int | NotFound = 278,
) -> AsyncMock:
    metadata = AsyncMock()
    metadata.resolve.return_value = internal_id
    metadata.describe.return_value = descriptor
    return metadata


def _provider(name: str, result: list[ProviderStreams] | Exception) -> MagicMock:
    provider = MagicMock()
    provider.name = name
    if isinstance(result, Exception):
        provider.fetch_streams = AsyncMock(side_effect=result)
    else:
        provider.fetch_streams = AsyncMock(return_value=result)
    return provider


def _slow_provider(name: str, delay: float) -> MagicMock:
    async def _fetch(descriptor: MediaDescriptor) -> list[ProviderStreams]:
        await asyncio.sleep(delay)
        return [_bundle(name, "https://cdn.test/slow/720p.mp4")]

    provider = MagicMock()
    provider.name = name
    provider.fetch_streams = _fetch
    return provider


def _bundle(provider: str, *urls: str) -> ProviderStreams:
    return ProviderStreams(
        provider_name=provider,
        files=tuple(
            RawStreamFile(url=url, media_type="mp4" if url.endswith(".mp4") else "url")
            for url in urls
        ),
    )


def _use_case(
    metadata: AsyncMock,
    providers: list[MagicMock],
    *,
    config: ResolutionConfig | None = None,
    relay_enabled: bool = True,
) -> ResolveStreamsUseCase:
    config = config or ResolutionConfig()
    return ResolveStreamsUseCase(
        metadata=metadata,
        providers=providers,
        config=config,
        sorter=StreamSorter(config),
        normalize_fn=normalize_bundle,
        relay_enabled=relay_enabled,
    )


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestResolveMovie:
    @pytest.mark.asyncio()
    async def test_mp4_and_adaptive_ranked(
        self,
        movie_query: MediaQuery,
        movie_descriptor: MediaDescriptor,
    ) -> None:
        bundle = ProviderStreams(
            provider_name="embedsu",
            files=(
                RawStreamFile(url="https://cdn.test/master.m3u8"),
                RawStreamFile(
                    url="https://cdn.test/1080p.mp4",
                    declared_quality="1080p",
                    media_type="mp4",
                ),
            ),
            headers={"Referer": "https://embed.su/"},
        )
        uc = _use_case(
            _metadata(movie_descriptor), [_provider("embed_api", [bundle])]
        )

        result = await uc.execute(movie_query, relay_base_url=_RELAY)

        assert [s.quality_label for s in result.streams] == ["1080p", "adaptive"]
        adaptive = result.streams[1]
        assert adaptive.playback_url.startswith(f"{_RELAY}/m3u8-proxy?url=")
        assert "headers=" in adaptive.playback_url
        assert result.cache_max_age == 3600
        assert result.stale_revalidate_age == 14400
        assert result.stale_error_age == 604800

    @pytest.mark.asyncio()
    async def test_metadata_calls(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        metadata = _metadata(movie_descriptor)
        provider = _provider("embed_api", [])
        uc = _use_case(metadata, [provider])

        await uc.execute(movie_query)

        metadata.resolve.assert_awaited_once_with(movie_query)
        metadata.describe.assert_awaited_once_with(movie_query, 278)
        provider.fetch_streams.assert_awaited_once_with(movie_descriptor)

    @pytest.mark.asyncio()
    async def test_relay_disabled_keeps_upstream_urls(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        bundle = _bundle("embedsu", "https://cdn.test/master.m3u8")
        uc = _use_case(
            _metadata(movie_descriptor),
            [_provider("embed_api", [bundle])],
            relay_enabled=False,
        )
        result = await uc.execute(movie_query, relay_base_url=_RELAY)
        assert result.streams[0].playback_url == "https://cdn.test/master.m3u8"

    @pytest.mark.asyncio()
    async def test_providers_ranked_by_priority(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        uc = _use_case(
            _metadata(movie_descriptor),
            [
                _provider("embed_api", [_bundle("vidsrcsu", "https://cdn.test/v.mp4")]),
                _provider("hdrezka", [_bundle("hdrezka", "https://cdn.test/h.mp4")]),
            ],
        )
        result = await uc.execute(movie_query)
        assert [s.provider_name for s in result.streams] == ["hdrezka", "vidsrcsu"]


# ---------------------------------------------------------------------------
# Nothing to resolve
# ---------------------------------------------------------------------------


class TestEmptyResults:
    @pytest.mark.asyncio()
    async def test_unknown_id_skips_providers(self) -> None:
        query = MediaQuery(external_id="tt9999999", kind="series", season=1, episode=1)
        metadata = _metadata(NotFound(), internal_id=NotFound("no tv result"))
        provider = _provider("embed_api", [])
        uc = _use_case(metadata, [provider])

        result = await uc.execute(query)

        assert result.is_empty
        assert result.cache_max_age == 60
        metadata.describe.assert_not_awaited()
        provider.fetch_streams.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_unreleased_title(self, movie_query: MediaQuery) -> None:
        provider = _provider("embed_api", [])
        uc = _use_case(_metadata(NotFound("not released yet")), [provider])
        result = await uc.execute(movie_query)
        assert result.is_empty
        provider.fetch_streams.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_metadata_failure_is_empty(self, movie_query: MediaQuery) -> None:
        metadata = AsyncMock()
        metadata.resolve.side_effect = TransientUpstreamError("TMDB down")
        uc = _use_case(metadata, [_provider("embed_api", [])])
        result = await uc.execute(movie_query)
        assert result.is_empty
        assert result.cache_max_age == 60

    @pytest.mark.asyncio()
    async def test_unexpected_metadata_error_is_empty(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        metadata = _metadata(movie_descriptor)
        metadata.describe.side_effect = KeyError("release_date")
        provider = _provider("embed_api", [])
        uc = _use_case(metadata, [provider])

        result = await uc.execute(movie_query)

        assert result.is_empty
        assert result.cache_max_age == 60
        provider.fetch_streams.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_no_providers(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        result = await _use_case(_metadata(movie_descriptor), []).execute(movie_query)
        assert result.is_empty

    def test_empty_uses_short_window(self) -> None:
        uc = _use_case(AsyncMock(), [])
        result = uc.empty()
        assert result.streams == ()
        assert result.cache_max_age == 60
        assert result.stale_error_age == 604800

    @pytest.mark.asyncio()
    async def test_configured_cache_ages(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        config = ResolutionConfig(cache_max_age=10, cache_max_age_empty=5)
        bundle = _bundle("embedsu", "https://cdn.test/1080p.mp4")
        full = _use_case(
            _metadata(movie_descriptor),
            [_provider("embed_api", [bundle])],
            config=config,
        )
        assert (await full.execute(movie_query)).cache_max_age == 10
        assert _use_case(AsyncMock(), [], config=config).empty().cache_max_age == 5


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestProviderFailures:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "error",
        [
            TransientUpstreamError("HTTP 503", status_code=503),
            MalformedResponseError("bad json"),
            RuntimeError("bug in adapter"),
        ],
    )
    async def test_failed_provider_only_drops_itself(
        self,
        movie_query: MediaQuery,
        movie_descriptor: MediaDescriptor,
        error: Exception,
    ) -> None:
        uc = _use_case(
            _metadata(movie_descriptor),
            [
                _provider("hdrezka", error),
                _provider("embed_api", [_bundle("embedsu", "https://cdn.test/a.mp4")]),
            ],
        )
        result = await uc.execute(movie_query)
        assert [s.provider_name for s in result.streams] == ["embedsu"]
        assert result.cache_max_age == 3600

    @pytest.mark.asyncio()
    async def test_all_providers_fail(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        uc = _use_case(
            _metadata(movie_descriptor),
            [
                _provider("hdrezka", TransientUpstreamError("down")),
                _provider("embed_api", RuntimeError("boom")),
            ],
        )
        result = await uc.execute(movie_query)
        assert result.is_empty
        assert result.cache_max_age == 60

    @pytest.mark.asyncio()
    async def test_slow_provider_times_out(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        config = ResolutionConfig(provider_timeout_seconds=0.05)
        uc = _use_case(
            _metadata(movie_descriptor),
            [
                _slow_provider("hdrezka", delay=5.0),
                _provider("embed_api", [_bundle("embedsu", "https://cdn.test/a.mp4")]),
            ],
            config=config,
        )
        result = await asyncio.wait_for(uc.execute(movie_query), timeout=2.0)
        assert [s.provider_name for s in result.streams] == ["embedsu"]

    @pytest.mark.asyncio()
    async def test_providers_run_concurrently(
        self, movie_query: MediaQuery, movie_descriptor: MediaDescriptor
    ) -> None:
        config = ResolutionConfig(provider_timeout_seconds=1.0)
        uc = _use_case(
            _metadata(movie_descriptor),
            [_slow_provider("hdrezka", 0.3), _slow_provider("autoembed", 0.3)],
            config=config,
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await uc.execute(movie_query)
        assert len(result.streams) == 2
        assert loop.time() - started < 0.55
