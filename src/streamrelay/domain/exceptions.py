"""Domain exceptions.

"Nothing matched" is not an error: lookups return ``NotFound`` instead.
"""

from __future__ import annotations


class StreamRelayError(Exception):
    """Base class for all application errors."""


class ConfigurationError(StreamRelayError):
    """Raised at start-up when required configuration is missing or invalid."""


class ProviderError(StreamRelayError):
    """Base class for failures inside a single provider or metadata lookup."""


class TransientUpstreamError(ProviderError):
    """Network failure or non-success HTTP status. Retryable."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(ProviderError):
    """Successful response whose body could not be parsed. Not retried."""


class RelayError(StreamRelayError):
    """Base class for relay failures."""


class InvalidRelayParameters(RelayError):
    """Raised when relay query parameters cannot be decoded."""
