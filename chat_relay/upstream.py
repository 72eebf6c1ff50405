"""
HTTP client for the chat backend.

Covers the two kinds of upstream traffic the relay forwards:
- streaming completions, handed to the reframer as a text iterator
- session CRUD, forwarded as plain JSON request/response pairs
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

import anyio
import httpx
from pydantic import BaseModel

from .config import Configuration
from .exceptions import UpstreamConnectionError, UpstreamHTTPError
from .logging_utils import log_operation, operation_context


class CompletionRequest(BaseModel):
    """Body of a completion request, forwarded to the backend as-is."""
    user_id: str | None = None
    question: str
    session_id: str | None = None
    stream: bool = True


class UpstreamClient:
    """Pooled httpx client for the chat backend."""

    def __init__(
        self,
        configuration: Configuration,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.configuration = configuration
        http_config = configuration.get_http_client_config()

        self.client: httpx.AsyncClient = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(
                connect=http_config["connect_timeout"],
                read=http_config["read_timeout"],
                write=http_config["write_timeout"],
                pool=http_config["pool_timeout"],
            ),
            limits=httpx.Limits(
                max_connections=http_config["max_connections"],
                max_keepalive_connections=http_config["max_keepalive"],
                keepalive_expiry=http_config["keepalive_expiry"],
            ),
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.configuration.api_key}"}

    def _chat_url(self, base_url: str, path: str) -> str:
        return f"{base_url}/api/v1/chats/{self.configuration.chat_id}{path}"

    @log_operation("open_completion")
    async def open_completion(self, request: CompletionRequest) -> httpx.Response:
        """
        Start a streaming completion and return the open response.

        The response status is checked before anything is forwarded, so
        failures here can still become an ordinary HTTP error response. A
        non-2xx reply is never streamed: its body is not relayed as frames,
        and a reply without a JSON body becomes a generic error payload.

        Raises:
            ConfigurationError: If the backend endpoint or chat id is unset.
            UpstreamHTTPError: If the backend answers with a non-2xx status.
            UpstreamConnectionError: If the backend cannot be reached.
        """
        url = self._chat_url(self.configuration.api_endpoint, "/completions")
        upstream_request = self.client.build_request(
            "POST",
            url,
            params={"user_id": request.user_id or ""},
            headers={
                **self._auth_headers(),
                "Accept": "text/event-stream",
                "Cache-Control": "no-cache",
            },
            json=request.model_dump(),
        )

        try:
            response = await self.client.send(upstream_request, stream=True)
        except httpx.HTTPError as e:
            logging.error(f"HTTP error opening completion stream: {e}")
            raise UpstreamConnectionError(f"HTTP error: {e!s}") from e

        if response.is_success:
            return response

        try:
            raise await self._error_from_response(response)
        finally:
            await response.aclose()

    async def _error_from_response(self, response: httpx.Response) -> UpstreamHTTPError:
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return UpstreamHTTPError(
                f"Upstream returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        await response.aread()
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        if not isinstance(error_data, dict):
            error_data = {}

        return UpstreamHTTPError(
            error_data.get("message") or "Server error",
            status_code=response.status_code,
            code=error_data.get("code") or -1,
        )

    @staticmethod
    async def iter_text(response: httpx.Response) -> AsyncGenerator[str]:
        """Decoded body chunks; closing the generator closes the response."""
        try:
            async for chunk in response.aiter_text():
                yield chunk
        finally:
            with anyio.CancelScope(shield=True):
                await response.aclose()

    async def forward_session_request(
        self,
        method: str,
        *,
        params: list[tuple[str, str]] | None = None,
        body: bytes | None = None,
    ) -> Any:
        """
        Forward a session CRUD call and return the decoded JSON reply.

        An empty success reply (such as a 204 from DELETE) decodes to None.
        A success reply that is not JSON is a backend fault and raises
        UpstreamHTTPError with status 502.

        PUT renames a session: it is sent to the backend as a PATCH on
        ``/sessions/{id}`` with only ``name`` and ``user_id``.
        """
        method = method.upper()
        base_url = self.configuration.sessions_endpoint
        content: bytes | None = body

        if method == "PUT":
            data = json.loads(body or b"{}")
            if not isinstance(data, dict) or not data.get("id"):
                raise ValueError("Session rename requires an 'id'")
            path = f"/sessions/{data['id']}"
            content = json.dumps(
                {"name": data.get("name"), "user_id": data.get("user_id")}
            ).encode()
            method = "PATCH"
        else:
            path = "/sessions"

        if method == "GET":
            content = None

        headers = {**self._auth_headers(), "Content-Type": "application/json"}
        async with operation_context(
            "session_request", context={"method": method, "path": path}
        ):
            try:
                response = await self.client.request(
                    method,
                    self._chat_url(base_url, path),
                    params=params if method == "GET" else None,
                    headers=headers,
                    content=content or None,
                )
            except httpx.HTTPError as e:
                raise UpstreamConnectionError(f"HTTP error: {e!s}") from e

            if not response.is_success:
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {"message": "Unknown error"}
                message = None
                if isinstance(error_data, dict):
                    message = error_data.get("message")
                raise UpstreamHTTPError(
                    message or f"HTTP error! status: {response.status_code}",
                    status_code=response.status_code,
                )

            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamHTTPError(
                    "Invalid JSON from upstream", status_code=502
                ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> UpstreamClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
