"""Shared base class for httpx-based provider adapters.

Holds what every adapter repeats: the shared client, the retry policy,
request headers, and translation of httpx failures into domain errors.

This base class lives in the *infrastructure* layer because it depends
on ``httpx`` and ``structlog``. The application layer only knows
``StreamProviderPort``; subclasses satisfy that Protocol structurally.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from streamrelay.domain.entities.media import MediaDescriptor, ProviderStreams
from streamrelay.domain.exceptions import (
    MalformedResponseError,
    TransientUpstreamError,
)
from streamrelay.infrastructure.common.retry import RetryPolicy, retry_async


class HttpxProviderBase:
    """Shared base for httpx-based provider adapters.

    Subclasses **must** set ``name`` and override ``fetch_streams()``.
    Subclasses **may** set ``_default_headers``.
    """

    name: str = ""

    _default_headers: dict[str, str] = {}  # noqa: RUF012  # subclass overrides

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        base_url: str,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._http = http_client
        self.base_url = base_url.rstrip("/")
        self._retry = retry_policy or RetryPolicy()
        self._log = structlog.get_logger(self.name or __name__)

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------

    async def _fetch_once(
        self, method: str, url: str, *, context: str, **kwargs: Any
    ) -> httpx.Response:
        headers = {**self._default_headers, **kwargs.pop("headers", {})}
        try:
            resp = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise TransientUpstreamError(
                f"{self.name} {context}: {type(exc).__name__}: {exc}"
            ) from exc

        if not resp.is_success:
            raise TransientUpstreamError(
                f"{self.name} {context}: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp

    async def _fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        context: str = "",
        **kwargs: Any,
    ) -> httpx.Response:
        """Request *url*, retrying transport errors and non-2xx statuses.

        Raises:
            TransientUpstreamError: every attempt failed.
        """
        return await retry_async(
            lambda: self._fetch_once(method, url, context=context, **dict(kwargs)),
            policy=self._retry,
            context=f"{self.name}:{context}",
        )

    def _parse_json(self, response: httpx.Response, context: str = "") -> Any:
        """Parse a JSON body; a broken body is a hard failure."""
        try:
            return response.json()
        except ValueError as exc:
            self._log.warning(
                f"{self.name}_invalid_json",
                url=str(response.url),
                context=context,
            )
            raise MalformedResponseError(
                f"{self.name} {context}: invalid JSON"
            ) from exc

    # ------------------------------------------------------------------
    # Abstract fetch (subclass must implement)
    # ------------------------------------------------------------------

    async def fetch_streams(self, descriptor: MediaDescriptor) -> list[ProviderStreams]:
        """Return the streams this provider offers for *descriptor*.

        Subclasses **must** override this method.
        """
        raise NotImplementedError(
            f"{type(self).__name__}.fetch_streams() not implemented"
        )
