"""
SSE reframer for upstream completion bodies.

Upstream chunks are not aligned with lines: one read may end mid-line, carry
several lines, or carry nothing but newlines. The reframer keeps only the
unterminated tail between reads and forwards every complete line as soon as it
is seen, as one ``data: ...`` frame.
"""

from __future__ import annotations

import codecs
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator

import anyio
import structlog

from .models import ErrorPayload, Frame, ReframeStats, StreamOutcome

STREAM_ERROR_MESSAGE = "Stream processing error"

logger = structlog.get_logger(__name__)


def split_complete_lines(buffer: str) -> tuple[list[str], str]:
    """
    Split ``buffer`` on newlines.

    Returns the complete lines and the trailing fragment, which is not yet
    known to be a whole line and must be carried into the next read.
    """
    lines = buffer.split("\n")
    leftover = lines.pop()
    return lines, leftover


def format_frame(line: str) -> str | None:
    """Render one logical line as an SSE frame, or None for a blank line."""
    frame = Frame.from_line(line)
    return frame.render() if frame else None


def error_frame(message: str = STREAM_ERROR_MESSAGE, code: int = -1) -> str:
    """In-band failure frame for errors raised after headers were sent."""
    return Frame(line=f"data: {ErrorPayload(message, code).to_json()}").render()


async def close_source(source: AsyncIterator) -> None:
    """Close an upstream iterator, even from inside a cancelled task."""
    aclose = getattr(source, "aclose", None)
    if aclose is None:
        return
    with anyio.CancelScope(shield=True):
        await aclose()


async def reframe_stream(
    source: AsyncIterable[str | bytes],
) -> AsyncGenerator[str]:
    """
    Re-emit an upstream text stream as well-formed SSE frames.

    The generator is pull-driven: the next upstream chunk is read only once
    the consumer has taken every frame of the previous one, so a slow client
    throttles upstream reads instead of growing a buffer.

    Lines already starting with ``data:`` pass through unchanged; any other
    non-blank line is prefixed. A trailing line with no newline is flushed when
    the upstream ends. A read error yields a single error frame and ends the
    stream. Closing or cancelling the generator closes ``source`` before
    returning.
    """
    iterator = aiter(source)
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    stats = ReframeStats()
    outcome = StreamOutcome.CANCELLED
    leftover = ""

    try:
        while True:
            try:
                chunk = await anext(iterator)
            except StopAsyncIteration:
                break
            except Exception as e:
                outcome = StreamOutcome.ERROR
                logger.error(
                    "Upstream read failed mid-stream",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    **stats.as_log_context(),
                )
                stats.frames_emitted += 1
                yield error_frame()
                return

            stats.chunks_read += 1
            text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
            lines, leftover = split_complete_lines(leftover + text)

            for line in lines:
                frame = format_frame(line)
                if frame is None:
                    continue
                stats.frames_emitted += 1
                yield frame

        leftover += decoder.decode(b"", final=True)
        final = format_frame(leftover)
        if final is not None:
            stats.frames_emitted += 1
            yield final
        outcome = StreamOutcome.COMPLETED

    finally:
        await close_source(iterator)
        log = logger.info if outcome is StreamOutcome.COMPLETED else logger.warning
        log("Reframed stream finished", outcome=outcome.value, **stats.as_log_context())
