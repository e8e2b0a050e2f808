"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from streamrelay.application.use_cases import ResolveStreamsUseCase
from streamrelay.domain.exceptions import ConfigurationError
from streamrelay.domain.ports import StreamProviderPort
from streamrelay.infrastructure.common import RetryPolicy, UuidTokenGenerator
from streamrelay.infrastructure.config import AppConfig
from streamrelay.infrastructure.providers.embed_api import EmbedApiProvider
from streamrelay.infrastructure.providers.hdrezka import HdrezkaProvider
from streamrelay.infrastructure.streams.normalizer import normalize_bundle
from streamrelay.infrastructure.streams.stream_sorter import StreamSorter
from streamrelay.infrastructure.tmdb.client import HttpxTmdbClient
from streamrelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def require_api_key(config: AppConfig) -> str:
    """Return the TMDB key or fail start-up."""
    if not config.tmdb_api_key:
        raise ConfigurationError(
            "TMDB API key missing: set STREAMRELAY_TMDB_API_KEY (or TMDB_API_KEY) "
            "or tmdb.api_key in the config file"
        )
    return config.tmdb_api_key


def retry_policy_from(config: AppConfig) -> RetryPolicy:
    return RetryPolicy(
        attempts=config.resolution.retry_attempts,
        backoff_base=config.resolution.retry_backoff_seconds,
        max_backoff=config.resolution.retry_max_backoff_seconds,
    )


def build_providers(
    config: AppConfig,
    http_client: httpx.AsyncClient,
    retry_policy: RetryPolicy,
) -> list[StreamProviderPort]:
    """Instantiate the enabled provider adapters only."""
    providers: list[StreamProviderPort] = []
    settings = config.providers

    if settings.embed_api.enabled:
        providers.append(
            EmbedApiProvider(
                http_client=http_client,
                base_url=settings.embed_api.base_url,
                retry_policy=retry_policy,
            )
        )
    if settings.hdrezka.enabled:
        providers.append(
            HdrezkaProvider(
                http_client=http_client,
                base_url=settings.hdrezka.base_url,
                retry_policy=retry_policy,
                token_generator=UuidTokenGenerator(),
            )
        )
    return providers


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. HTTP client (shared by everything below)
        2. TMDB client
        3. Provider adapters (enabled ones only)
        4. Resolution use case
    """
    state = cast(AppState, app.state)
    config = state.config

    # 1) HTTP client; retries happen per call via RetryPolicy, not in transport
    state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=True,
    )
    log.info("http_client_initialized", timeout=config.http_timeout_seconds)

    retry_policy = retry_policy_from(config)

    # 2) Metadata lookups
    state.metadata_client = HttpxTmdbClient(
        api_key=require_api_key(config),
        http_client=state.http_client,
        retry_policy=retry_policy,
        language=config.tmdb_language,
    )
    log.info("tmdb_client_initialized")

    # 3) Providers
    state.providers = build_providers(config, state.http_client, retry_policy)
    log.info("providers_initialized", providers=[p.name for p in state.providers])
    if not state.providers:
        log.warning("no_providers_enabled")

    # 4) Use case
    state.resolve_streams_uc = ResolveStreamsUseCase(
        metadata=state.metadata_client,
        providers=state.providers,
        config=config.resolution,
        sorter=StreamSorter(config.resolution),
        normalize_fn=normalize_bundle,
        relay_enabled=config.relay.enabled,
    )

    log.info("app_startup_complete")

    try:
        yield
    finally:
        await state.http_client.aclose()
        log.info("http_client_closed")

        log.info("app_shutdown_complete")
