"""
Chat relay: server-side routes between a browser chat UI and its backend.

This package provides:
- SSE reframing of upstream completion streams
- Session CRUD passthrough
- Signed TTS connection settings
"""

from __future__ import annotations

from .app import create_app
from .config import Configuration
from .exceptions import (
    ConfigurationError,
    RelayError,
    StreamProtocolError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamHTTPError,
)
from .streaming import reframe_stream

__version__ = "0.1.0"

__all__ = [
    "Configuration",
    "ConfigurationError",
    "RelayError",
    "StreamProtocolError",
    "UpstreamConnectionError",
    "UpstreamError",
    "UpstreamHTTPError",
    "create_app",
    "reframe_stream",
]
