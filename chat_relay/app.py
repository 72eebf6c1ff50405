"""
FastAPI application exposing the relay routes.

- ``POST /api/completions``: streaming completion, reframed as SSE
- ``/api/sessions``: session CRUD passthrough
- ``POST /api/tts`` and ``GET /api/tts/config``: signed TTS settings
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import anyio
import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.types import Receive, Scope, Send

from .config import Configuration
from .exceptions import RelayError
from .logging_utils import ErrorClassifier
from .streaming.reframer import close_source, reframe_stream
from .tts import build_tts_config
from .upstream import CompletionRequest, UpstreamClient

logger = structlog.get_logger(__name__)

NO_CACHE = "no-cache, no-transform"

SSE_HEADERS = {
    "Cache-Control": NO_CACHE,
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class EventStreamResponse(StreamingResponse):
    """
    Streaming response for SSE bodies.

    The body iterator is closed on every exit path: normal completion, a send
    failure, or cancellation on client disconnect. ``on_close`` runs after it,
    covering a body that was never started.
    """

    media_type = "text/event-stream"

    def __init__(
        self,
        content: AsyncIterator[str],
        *,
        on_close: Callable[[], Awaitable[None]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(content, **kwargs)
        self.on_close = on_close

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await close_source(self.body_iterator)
            if self.on_close is not None:
                with anyio.CancelScope(shield=True):
                    await self.on_close()


def _error_message(error: Exception) -> str:
    if isinstance(error, RelayError):
        return error.message
    return str(error) or "Internal Server Error"


def create_app(
    configuration: Configuration,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        configuration: Loaded relay configuration
        transport: Optional httpx transport for the upstream client

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with UpstreamClient(configuration, transport=transport) as upstream:
            app.state.upstream = upstream
            yield

    app = FastAPI(title="Chat Relay", lifespan=lifespan)
    app.state.configuration = configuration

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("Rejected request body", path=request.url.path)
        return JSONResponse(
            {"code": -1, "message": "Invalid request body", "data": None},
            status_code=422,
            headers={"Cache-Control": NO_CACHE},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/completions")
    async def completions(payload: CompletionRequest, request: Request):
        upstream: UpstreamClient = request.app.state.upstream

        try:
            response = await upstream.open_completion(payload)
        except Exception as e:
            status_code, category = ErrorClassifier.classify(e)
            logger.error(
                "Completion request failed before streaming",
                error_category=category,
                error_message=str(e),
                status_code=status_code,
            )
            return JSONResponse(
                ErrorClassifier.to_payload(e),
                status_code=status_code,
                headers={"Cache-Control": NO_CACHE},
            )

        return EventStreamResponse(
            reframe_stream(UpstreamClient.iter_text(response)),
            on_close=response.aclose,
            headers=SSE_HEADERS,
        )

    @app.api_route(
        "/api/sessions", methods=["GET", "POST", "PUT", "PATCH", "DELETE"]
    )
    async def sessions(request: Request):
        upstream: UpstreamClient = request.app.state.upstream
        body = None if request.method == "GET" else await request.body()

        try:
            data = await upstream.forward_session_request(
                request.method,
                params=request.query_params.multi_items(),
                body=body,
            )
        except Exception as e:
            status_code, category = ErrorClassifier.classify(e)
            logger.error(
                "Session request failed",
                method=request.method,
                error_category=category,
                error_message=str(e),
            )
            return JSONResponse(
                {
                    "error": _error_message(e),
                    "timestamp": datetime.now(UTC).isoformat(),
                },
                status_code=status_code,
            )

        return JSONResponse(data)

    def _tts_settings() -> JSONResponse:
        try:
            settings: dict[str, Any] = build_tts_config(
                configuration.get_tts_credentials(),
                configuration.get_tts_config(),
            )
        except Exception as e:
            logger.error("TTS config failed", error_message=str(e))
            return JSONResponse(
                {"error": "Internal Server Error", "message": str(e)},
                status_code=500,
            )
        return JSONResponse(settings)

    @app.post("/api/tts")
    async def tts() -> JSONResponse:
        return _tts_settings()

    @app.get("/api/tts/config")
    async def tts_config() -> JSONResponse:
        return _tts_settings()

    return app
