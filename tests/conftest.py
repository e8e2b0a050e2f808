"""Shared test fixtures for the StreamRelay test suite."""

from __future__ import annotations

import pytest

from streamrelay.domain.entities.media import (
    MediaDescriptor,
    MediaQuery,
    ProviderStreams,
    RawStreamFile,
    SubtitleTrack,
)
from streamrelay.infrastructure.config.schema import AppConfig, ResolutionConfig

# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def app_config() -> AppConfig:
    """AppConfig with a TMDB key and fast retries."""
    return AppConfig.model_validate(
        {
            "environment": "test",
            "tmdb": {"api_key": "test-api-key-123"},
            "resolution": {
                "retry_attempts": 1,
                "retry_backoff_seconds": 0.0,
                "provider_timeout_seconds": 2.0,
            },
            "providers": {
                "embed_api": {"base_url": "https://embed.test"},
                "hdrezka": {"enabled": False},
            },
        }
    )


@pytest.fixture()
def resolution_config() -> ResolutionConfig:
    return ResolutionConfig()


# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def movie_query() -> MediaQuery:
    return MediaQuery(external_id="tt0111161", kind="movie")


@pytest.fixture()
def episode_query() -> MediaQuery:
    return MediaQuery(external_id="tt0944947", kind="series", season=1, episode=2)


@pytest.fixture()
def movie_descriptor() -> MediaDescriptor:
    """The Shawshank Redemption, as resolved through TMDB."""
    return MediaDescriptor(
        title="The Shawshank Redemption",
        release_year=1994,
        internal_id=278,
        kind="movie",
        external_id="tt0111161",
    )


@pytest.fixture()
def episode_descriptor() -> MediaDescriptor:
    return MediaDescriptor(
        title="Game of Thrones",
        release_year=2011,
        internal_id=1399,
        kind="series",
        season=1,
        episode=2,
        external_id="tt0944947",
        episode_title="The Kingsroad",
    )


@pytest.fixture()
def provider_bundle() -> ProviderStreams:
    """One mp4 with a declared quality and one untyped HLS playlist."""
    return ProviderStreams(
        provider_name="embedsu",
        files=(
            RawStreamFile(
                url="https://cdn.test/movie/1080p.mp4",
                declared_quality="1080p",
                media_type="mp4",
                language="en",
            ),
            RawStreamFile(
                url="https://cdn.test/movie/master.m3u8",
                media_type="hls",
            ),
        ),
        subtitles=(SubtitleTrack(url="https://cdn.test/en.vtt", language_code="en"),),
        headers={"Referer": "https://embed.test/"},
    )

