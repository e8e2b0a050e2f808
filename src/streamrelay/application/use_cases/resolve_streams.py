"""Stream resolution use case.

IMDb ID -> TMDB id -> metadata -> all providers concurrently
-> normalize -> rank -> ResolvedStreamSet.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from typing import Protocol

import structlog

from streamrelay.domain.entities.media import (
    MediaDescriptor,
    MediaQuery,
    NotFound,
    ProviderStreams,
    ResolvedStreamSet,
    StreamDescriptor,
)
from streamrelay.domain.exceptions import ProviderError
from streamrelay.domain.ports.metadata import MetadataClientPort
from streamrelay.domain.ports.stream_provider import StreamProviderPort

# ---------------------------------------------------------------------------
# Protocols: what this use case needs from its dependencies.
# Infrastructure components satisfy these via structural subtyping.
# ---------------------------------------------------------------------------


class _ResolutionConfig(Protocol):
    """Configuration values consumed by ResolveStreamsUseCase."""

    provider_timeout_seconds: float
    cache_max_age: int
    cache_max_age_empty: int
    stale_revalidate_age: int
    stale_error_age: int


class _StreamSorter(Protocol):
    def sort(self, streams: list[StreamDescriptor]) -> list[StreamDescriptor]: ...


# Normalizes one provider bundle; relay_base_url=None disables relaying.
_NormalizeFn = Callable[..., list[StreamDescriptor]]

log = structlog.get_logger(__name__)


class ResolveStreamsUseCase:
    """Resolve a media query into a ranked, cache-annotated stream set.

    Flow:
        1. Resolve the external id to the internal (TMDB) id.
        2. Describe the title (name, year, episode).
        3. Fan out to every provider; each has its own deadline and its
           failure only removes its own contribution.
        4. Normalize each bundle (relay rewriting for adaptive streams).
        5. Rank and attach the cache-control window.

    Never raises for upstream trouble: a failed lookup yields an empty
    set with the short cache window.
    """

    def __init__(
        self,
        *,
        metadata: MetadataClientPort,
        providers: Sequence[StreamProviderPort],
        config: _ResolutionConfig,
        sorter: _StreamSorter,
        normalize_fn: _NormalizeFn,
        relay_enabled: bool = True,
    ) -> None:
        self._metadata = metadata
        self._providers = list(providers)
        self._sorter = sorter
        self._normalize_fn = normalize_fn
        self._relay_enabled = relay_enabled
        self._provider_timeout = config.provider_timeout_seconds
        self._cache_max_age = config.cache_max_age
        self._cache_max_age_empty = config.cache_max_age_empty
        self._stale_revalidate_age = config.stale_revalidate_age
        self._stale_error_age = config.stale_error_age

    async def execute(
        self,
        query: MediaQuery,
        *,
        relay_base_url: str | None = None,
    ) -> ResolvedStreamSet:
        """Resolve streams for *query*.

        Args:
            query: External id, kind and (for series) season/episode.
            relay_base_url: Base URL for relay links. Ignored when the
                relay is disabled; no relaying happens when it is None.

        Returns:
            Ranked streams, best first, plus cache-control ages.
        """
        descriptor = await self._describe(query)
        if descriptor is None:
            return self._enrich_cache_params([])

        bundles = await self._fetch_all(descriptor)

        base = relay_base_url if self._relay_enabled else None
        streams: list[StreamDescriptor] = []
        for bundle in bundles:
            streams.extend(self._normalize_fn(bundle, relay_base_url=base))

        ranked = self._sorter.sort(streams)
        log.info(
            "streams_resolved",
            external_id=query.external_id,
            kind=query.kind,
            season=query.season,
            episode=query.episode,
            providers=len(self._providers),
            streams=len(ranked),
        )
        return self._enrich_cache_params(ranked)

    async def _describe(self, query: MediaQuery) -> MediaDescriptor | None:
        """Run the metadata lookups; None means "no streams to look for"."""
        try:
            internal_id = await self._metadata.resolve(query)
            if isinstance(internal_id, NotFound):
                log.info(
                    "external_id_not_found",
                    external_id=query.external_id,
                    reason=internal_id.reason,
                )
                return None

            descriptor = await self._metadata.describe(query, internal_id)
        except ProviderError as exc:
            log.warning(
                "metadata_lookup_failed",
                external_id=query.external_id,
                error=str(exc),
            )
            return None
        except Exception:
            log.error(
                "metadata_lookup_crashed",
                external_id=query.external_id,
                exc_info=True,
            )
            return None

        if isinstance(descriptor, NotFound):
            log.info(
                "metadata_not_found",
                external_id=query.external_id,
                reason=descriptor.reason,
            )
            return None
        return descriptor

    async def _fetch_all(self, descriptor: MediaDescriptor) -> list[ProviderStreams]:
        """Join all providers; output order follows provider order."""
        tasks = [self._fetch_one(p, descriptor) for p in self._providers]
        results_per_provider = await asyncio.gather(*tasks)

        bundles: list[ProviderStreams] = []
        for results in results_per_provider:
            bundles.extend(results)
        return bundles

    async def _fetch_one(
        self,
        provider: StreamProviderPort,
        descriptor: MediaDescriptor,
    ) -> list[ProviderStreams]:
        """Fetch from one provider, demoting every failure to no streams."""
        t0 = time.perf_counter()
        try:
            bundles = await asyncio.wait_for(
                provider.fetch_streams(descriptor),
                timeout=self._provider_timeout,
            )
        except TimeoutError:
            log.warning(
                "provider_timeout",
                provider=provider.name,
                timeout=self._provider_timeout,
            )
            return []
        except ProviderError as exc:
            log.warning(
                "provider_failed",
                provider=provider.name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return []
        except Exception:
            log.error("provider_crashed", provider=provider.name, exc_info=True)
            return []

        log.debug(
            "provider_done",
            provider=provider.name,
            bundles=len(bundles),
            duration_ms=round((time.perf_counter() - t0) * 1000),
        )
        return list(bundles)

    def empty(self) -> ResolvedStreamSet:
        """Empty result with the short cache window."""
        return self._enrich_cache_params([])

    def _enrich_cache_params(
        self, streams: list[StreamDescriptor]
    ) -> ResolvedStreamSet:
        """Long cache window for results, a short one for nothing found."""
        return ResolvedStreamSet(
            streams=tuple(streams),
            cache_max_age=(
                self._cache_max_age if streams else self._cache_max_age_empty
            ),
            stale_revalidate_age=self._stale_revalidate_age,
            stale_error_age=self._stale_error_age,
        )
