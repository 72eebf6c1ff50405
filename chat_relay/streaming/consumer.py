"""
Consuming-side parser for reframed completion streams.

Mirrors what the browser chat client does with the relay's output: read
``data:`` lines, decode their JSON, and branch on the ``code`` field.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncGenerator, AsyncIterable

import structlog

from ..exceptions import StreamProtocolError
from .models import (
    DATA_PREFIX,
    CompletionEvent,
    CompletionEventType,
    Frame,
    MalformedLinePolicy,
)
from .reframer import split_complete_lines

logger = structlog.get_logger(__name__)


class CompletionStreamParser:
    """Turns SSE text into typed completion events."""

    def __init__(
        self,
        malformed_policy: MalformedLinePolicy = MalformedLinePolicy.WARN,
    ):
        self.malformed_policy = malformed_policy
        self.stats = {
            'lines_seen': 0,
            'events': 0,
            'malformed_lines': 0,
        }

    async def parse(
        self, chunks: AsyncIterable[str | bytes]
    ) -> AsyncGenerator[CompletionEvent]:
        """
        Parse a chunked SSE stream.

        Stops after the first ERROR event: an error frame always terminates
        the relay's stream.
        """
        buffer = ""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        async for chunk in chunks:
            text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
            lines, buffer = split_complete_lines(buffer + text)
            for line in lines:
                event = self.parse_line(line)
                if event is None:
                    continue
                yield event
                if event.event_type == CompletionEventType.ERROR:
                    return

        buffer += decoder.decode(b"", final=True)
        event = self.parse_line(buffer)
        if event is not None:
            yield event

    def parse_line(self, line: str) -> CompletionEvent | None:
        """Decode a single line; None for lines that carry no event."""
        trimmed = line.strip()
        if not trimmed.startswith(DATA_PREFIX):
            return None

        self.stats['lines_seen'] += 1
        data_content = Frame(line=trimmed).payload
        if not data_content:
            return None

        try:
            data = json.loads(data_content)
            event = self._to_event(data, data_content)
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            return self._handle_malformed(data_content, e)

        if event is not None:
            self.stats['events'] += 1
        return event

    def _to_event(self, data: object, raw: str) -> CompletionEvent | None:
        if not isinstance(data, dict) or "code" not in data:
            raise ValueError("frame is not a {code, message, data} object")

        code = data["code"]
        if code != 0:
            return CompletionEvent(
                event_type=CompletionEventType.ERROR,
                code=int(code),
                message=data.get("message") or "Stream error",
                raw_data=raw,
            )

        body = data.get("data")
        if body is True:
            return CompletionEvent(
                event_type=CompletionEventType.DONE, code=0, raw_data=raw
            )

        if isinstance(body, dict) and isinstance(body.get("answer"), str):
            return CompletionEvent(
                event_type=CompletionEventType.ANSWER,
                code=0,
                answer=body["answer"],
                reference=body.get("reference") or {},
                raw_data=raw,
            )

        # Successful frames without an answer (progress, metadata) are skipped
        return None

    def _handle_malformed(
        self, data_content: str, error: Exception
    ) -> CompletionEvent | None:
        self.stats['malformed_lines'] += 1

        if self.malformed_policy == MalformedLinePolicy.RAISE:
            raise StreamProtocolError(
                f"Malformed stream frame: {error}", line=data_content
            ) from error

        if self.malformed_policy == MalformedLinePolicy.WARN:
            logger.warning(
                "Skipping malformed stream frame",
                error_message=str(error),
                line=data_content[:200],
            )
        return None

    def get_stats(self) -> dict[str, int]:
        """Get parsing statistics for monitoring."""
        return self.stats.copy()

