#!/usr/bin/env python3
"""
Tests for the SSE reframer.

Covers chunk-boundary independence, prefix handling, flushing of the final
partial line, in-band errors, cancellation and pull-driven reads.
"""

import asyncio
import json
import random

import pytest

from chat_relay.streaming.models import Frame
from chat_relay.streaming.reframer import (
    error_frame,
    format_frame,
    reframe_stream,
    split_complete_lines,
)


async def chunks_of(*chunks):
    for chunk in chunks:
        yield chunk


async def collect(*chunks):
    return [frame async for frame in reframe_stream(chunks_of(*chunks))]


def partitions(text, seed):
    """Split text at a few random offsets."""
    rng = random.Random(seed)
    cuts = sorted(rng.sample(range(1, len(text)), k=min(5, len(text) - 1)))
    bounds = [0, *cuts, len(text)]
    return [text[a:b] for a, b in zip(bounds, bounds[1:])]


MIXED_STREAM = (
    'data: {"a":1}\n\n'
    '{"b":2}\r\n'
    "  \n"
    "plain text\n"
    'data:{"c":3}\n'
    "trailing"
)

MIXED_FRAMES = [
    'data: {"a":1}\n\n',
    'data: {"b":2}\n\n',
    "data: plain text\n\n",
    'data:{"c":3}\n\n',
    "data: trailing\n\n",
]


class TestHelpers:
    """Test the pure line and frame helpers."""

    def test_split_keeps_unterminated_tail(self):
        lines, leftover = split_complete_lines("one\ntwo\nthr")
        assert lines == ["one", "two"]
        assert leftover == "thr"

    def test_split_with_trailing_newline_leaves_empty_tail(self):
        lines, leftover = split_complete_lines("one\n")
        assert lines == ["one"]
        assert leftover == ""

    def test_format_frame_prefixes_bare_line(self):
        assert format_frame('  {"x":1}  ') == 'data: {"x":1}\n\n'

    def test_format_frame_keeps_existing_prefix(self):
        assert format_frame('data: {"x":1}') == 'data: {"x":1}\n\n'

    def test_format_frame_blank_line(self):
        assert format_frame(" \t\r") is None

    def test_frame_payload_strips_prefix(self):
        assert Frame.from_line('data:{"x":1}').payload == '{"x":1}'
        assert Frame.from_line('{"x":1}').payload == '{"x":1}'
        assert Frame.from_line("data:{}").render() == "data:{}\n\n"

    def test_error_frame_payload(self):
        frame = error_frame("boom", code=-2)
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {
            "code": -2, "message": "boom", "data": None
        }


class TestReframing:
    """Test frame output for different chunkings of the same stream."""

    @pytest.mark.asyncio
    async def test_single_chunk(self):
        assert await collect(MIXED_STREAM) == MIXED_FRAMES

    @pytest.mark.asyncio
    async def test_one_character_per_chunk(self):
        assert await collect(*MIXED_STREAM) == MIXED_FRAMES

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_random_partitions_match(self, seed):
        assert await collect(*partitions(MIXED_STREAM, seed)) == MIXED_FRAMES

    @pytest.mark.asyncio
    async def test_no_double_prefix(self):
        frames = await collect('data: {"x":1}\n', "data: data\n")
        assert frames == ['data: {"x":1}\n\n', "data: data\n\n"]
        assert all(not f.startswith("data: data:") for f in frames)

    @pytest.mark.asyncio
    async def test_trailing_partial_line_flushed_on_close(self):
        frames = await collect('data: {"a":1}\n\ndata: {"a":')
        assert frames == ['data: {"a":1}\n\n', 'data: {"a":\n\n']

    @pytest.mark.asyncio
    async def test_empty_lines_suppressed(self):
        assert await collect("\n\n\n") == []

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        assert await collect() == []

    @pytest.mark.asyncio
    async def test_two_reads_end_to_end(self):
        frames = await collect(
            '{"code":0,"data":{"answer":"Hi"}}\n',
            '{"code":0,"data":{"answer":"Hi there"}}\n',
        )
        assert frames == [
            'data: {"code":0,"data":{"answer":"Hi"}}\n\n',
            'data: {"code":0,"data":{"answer":"Hi there"}}\n\n',
        ]

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_byte_chunks(self):
        encoded = '{"t":"café"}\n'.encode()
        split_at = encoded.index(b"\xc3") + 1
        frames = await collect(encoded[:split_at], encoded[split_at:])
        assert frames == ['data: {"t":"café"}\n\n']

    @pytest.mark.asyncio
    async def test_crlf_matches_lf(self):
        assert await collect("a\r\nb\r\n") == await collect("a\nb\n")


class TestFailureAndCancellation:
    """Test error frames, cancellation and resource release."""

    @pytest.mark.asyncio
    async def test_mid_stream_error_emits_one_error_frame(self):
        async def failing():
            yield "first\n"
            yield "second\npartial"
            raise RuntimeError("connection reset")

        frames = [f async for f in reframe_stream(failing())]

        assert frames[:2] == ["data: first\n\n", "data: second\n\n"]
        assert len(frames) == 3
        payload = json.loads(frames[2][len("data: "):])
        assert payload == {
            "code": -1, "message": "Stream processing error", "data": None
        }

    @pytest.mark.asyncio
    async def test_aclose_releases_upstream(self):
        released = []

        async def source():
            try:
                yield "one\n"
                yield "two\n"
            finally:
                released.append(True)

        frames = reframe_stream(source())
        assert await anext(frames) == "data: one\n\n"
        await frames.aclose()

        assert released == [True]
        with pytest.raises(StopAsyncIteration):
            await anext(frames)

    @pytest.mark.asyncio
    async def test_task_cancellation_releases_upstream(self):
        released = []
        received = []
        first_frame = asyncio.Event()
        never = asyncio.Event()

        async def source():
            try:
                yield "first\n"
                await never.wait()
                yield "never\n"
            finally:
                released.append(True)

        async def consume():
            async for frame in reframe_stream(source()):
                received.append(frame)
                first_frame.set()

        task = asyncio.create_task(consume())
        await first_frame.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert released == [True]
        assert received == ["data: first\n\n"]

    @pytest.mark.asyncio
    async def test_reads_are_driven_by_consumer(self):
        reads = []

        async def source():
            for chunk in ["a\n", "b\n", "c\n"]:
                reads.append(chunk)
                yield chunk

        frames = reframe_stream(source())
        assert await anext(frames) == "data: a\n\n"
        assert reads == ["a\n"]
        assert await anext(frames) == "data: b\n\n"
        assert reads == ["a\n", "b\n"]
        await frames.aclose()
