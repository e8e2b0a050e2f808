"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from streamrelay.infrastructure.config import AppConfig
from streamrelay.interfaces.app_state import AppState
from streamrelay.interfaces.composition import lifespan, require_api_key

log = structlog.get_logger(__name__)


def create_app(config: AppConfig) -> FastAPI:
    """Create FastAPI app: configuration ONLY, NO resource initialization.

    Resources (HTTP client, TMDB client, providers) are created in lifespan().

    Raises:
        ConfigurationError: the TMDB API key is missing.
    """
    require_api_key(config)

    app = FastAPI(
        title="StreamRelay",
        description="Multi-provider stream resolver with an HLS relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    from streamrelay.interfaces.api.relay.router import router as relay_router
    from streamrelay.interfaces.api.stremio.router import router as stremio_router

    app.include_router(stremio_router)

    @app.get("/healthz")
    async def healthz() -> JSONResponse:
        """Liveness probe: returns 200 as long as the process is running."""
        providers = getattr(app.state, "providers", None) or []
        return JSONResponse(
            content={"status": "ok", "providers": [p.name for p in providers]},
            headers={"Access-Control-Allow-Origin": "*"},
        )

    # Relay last: its catch-all routes would shadow everything after it.
    app.include_router(relay_router)

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
