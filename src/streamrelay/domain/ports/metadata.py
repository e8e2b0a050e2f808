"""Port for external-id resolution and metadata lookups."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from streamrelay.domain.entities.media import MediaDescriptor, MediaQuery, NotFound


@runtime_checkable
class MetadataClientPort(Protocol):
    """Async interface for the metadata service.

    Both methods raise ``TransientUpstreamError`` or
    ``MalformedResponseError`` on upstream failure.
    """

    async def resolve(self, query: MediaQuery) -> int | NotFound:
        """Map an external id to the internal (TMDB) id."""
        ...

    async def describe(
        self, query: MediaQuery, internal_id: int
    ) -> MediaDescriptor | NotFound:
        """Build the descriptor handed to provider adapters."""
        ...
