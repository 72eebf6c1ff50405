"""
Streaming functionality for the chat relay.

This package contains:
- SSE reframing of upstream completion bodies
- Consuming-side parsing of reframed streams
- Frame and event dataclasses
"""

from __future__ import annotations

from .consumer import CompletionStreamParser
from .models import (
    CompletionEvent,
    CompletionEventType,
    ErrorPayload,
    Frame,
    MalformedLinePolicy,
    StreamOutcome,
)
from .reframer import error_frame, format_frame, reframe_stream, split_complete_lines

__all__ = [
    "CompletionEvent",
    "CompletionEventType",
    "CompletionStreamParser",
    "ErrorPayload",
    "Frame",
    "MalformedLinePolicy",
    "StreamOutcome",
    "error_frame",
    "format_frame",
    "reframe_stream",
    "split_complete_lines",
]
