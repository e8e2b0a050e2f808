"""Retry with exponential backoff for upstream calls."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
import structlog

from streamrelay.domain.exceptions import TransientUpstreamError

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a transient failure.

    ``attempts`` counts every try, so ``attempts=3`` means one call plus
    at most two retries.
    """

    attempts: int = 3
    backoff_base: float = 0.5
    max_backoff: float = 8.0

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff with jitter for the 0-based *attempt*."""
        delay = self.backoff_base * (2**attempt)
        jitter = random.uniform(0, self.backoff_base)  # noqa: S311
        return min(delay + jitter, self.max_backoff)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    context: str,
) -> T:
    """Run *operation*, retrying transient upstream failures.

    ``TransientUpstreamError`` and ``httpx.HTTPError`` are retried; any
    other exception (notably ``MalformedResponseError``) propagates at
    once. When all attempts fail, the last error is raised.
    """
    for attempt in range(policy.attempts):
        try:
            return await operation()
        except (TransientUpstreamError, httpx.HTTPError) as exc:
            if attempt == policy.attempts - 1:
                log.warning(
                    "upstream_retries_exhausted",
                    context=context,
                    attempts=policy.attempts,
                    error=str(exc),
                )
                raise

            delay = policy.delay_for(attempt)
            log.info(
                "upstream_retry",
                context=context,
                attempt=attempt + 1,
                delay=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)

    # attempts >= 1 is enforced by configuration validation
    raise AssertionError("unreachable")  # pragma: no cover
