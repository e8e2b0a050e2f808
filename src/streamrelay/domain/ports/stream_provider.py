"""Port for stream provider adapters."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from streamrelay.domain.entities.media import MediaDescriptor, ProviderStreams


@runtime_checkable
class StreamProviderPort(Protocol):
    """One upstream source of playable media.

    ``fetch_streams`` returns an empty list when the title is not
    available and raises ``ProviderError`` subclasses on failure.
    """

    @property
    def name(self) -> str: ...

    async def fetch_streams(
        self, descriptor: MediaDescriptor
    ) -> list[ProviderStreams]: ...
