"""Port for per-request correlation tokens."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TokenGeneratorPort(Protocol):
    def new_token(self) -> str:
        """Return a fresh random token."""
        ...
