"""Common infrastructure utilities."""

from __future__ import annotations

from .retry import RetryPolicy, retry_async
from .tokens import UuidTokenGenerator

__all__ = [
    "RetryPolicy",
    "UuidTokenGenerator",
    "retry_async",
]
