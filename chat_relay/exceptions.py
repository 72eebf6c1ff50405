"""
Error handling for relay operations.

Every relay error carries the payload shape the browser client understands:
- ``code``: non-zero on failure (-1 unless upstream supplied one)
- ``message``: human readable description
- ``data``: always null for errors
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base relay error with response context."""

    def __init__(
        self,
        message: str,
        code: int = -1,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        """Render as the ``{code, message, data}`` error payload."""
        return {"code": self.code, "message": self.message, "data": None}


class ConfigurationError(RelayError):
    """A required setting is missing or invalid."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(message, **kwargs)


class UpstreamError(RelayError):
    """The chat backend could not serve the request."""
    pass


class UpstreamConnectionError(UpstreamError):
    """Transport-level failure talking to the chat backend."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(message, **kwargs)


class UpstreamHTTPError(UpstreamError):
    """Non-2xx or undecodable response from the chat backend."""

    def __init__(
        self,
        message: str,
        status_code: int,
        code: int = -1,
    ):
        super().__init__(message, code=code, status_code=status_code)


class StreamProtocolError(RelayError):
    """A frame on the consuming side could not be decoded."""

    def __init__(self, message: str, line: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.line = line
