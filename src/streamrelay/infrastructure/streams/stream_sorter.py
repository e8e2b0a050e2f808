"""Deterministic stream ranking.

Two-level key: provider priority (from ResolutionConfig), then quality
priority. Lower sorts first; Python's stable sort keeps input order on ties.
"""

from __future__ import annotations

from streamrelay.domain.entities.media import StreamDescriptor
from streamrelay.infrastructure.config.schema import ResolutionConfig

QUALITY_PRIORITY: dict[str, int] = {
    "2160p": 1,
    "1080p": 2,
    "720p": 3,
    "adaptive": 4,
    "480p": 5,
    "360p": 6,
    "unknown": 7,
}

# Labels outside the canonical set rank with "unknown".
_UNRANKED_QUALITY = QUALITY_PRIORITY["unknown"]


class StreamSorter:
    """Sort by provider priority, then quality priority.

    Providers missing from the table share ``default_provider_priority``.
    Provider names are matched case-insensitively.
    """

    def __init__(self, config: ResolutionConfig) -> None:
        self._provider_priorities = {
            name.lower(): prio for name, prio in config.provider_priorities.items()
        }
        self._default_provider_priority = config.default_provider_priority

    def provider_priority(self, provider_name: str) -> int:
        return self._provider_priorities.get(
            provider_name.lower(), self._default_provider_priority
        )

    def rank(self, stream: StreamDescriptor) -> tuple[int, int]:
        """Sort key for a single stream (lower = better)."""
        return (
            self.provider_priority(stream.provider_name),
            QUALITY_PRIORITY.get(stream.quality_label, _UNRANKED_QUALITY),
        )

    def sort(self, streams: list[StreamDescriptor]) -> list[StreamDescriptor]:
        """Return a new, stably sorted list."""
        return sorted(streams, key=self.rank)
