"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from streamrelay.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from streamrelay.application.use_cases import ResolveStreamsUseCase
    from streamrelay.domain.ports import MetadataClientPort, StreamProviderPort


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration (immutable)
    config: AppConfig

    # Infrastructure (shared by TMDB, providers and relay)
    http_client: httpx.AsyncClient

    # Domain ports
    metadata_client: MetadataClientPort
    providers: list[StreamProviderPort]

    # Application services
    resolve_streams_uc: ResolveStreamsUseCase
