#!/usr/bin/env python3
"""End-to-end test of the ask command: upstream -> reframer -> parser."""

import httpx
import pytest

from chat_relay.exceptions import RelayError
from chat_relay.main import ask


async def body_chunks(*chunks):
    for chunk in chunks:
        yield chunk


@pytest.mark.asyncio
async def test_ask_returns_final_answer(configuration):
    def handler(request):
        return httpx.Response(
            200,
            content=body_chunks(
                b'{"code":0,"data":{"answer":"Hi"}}\n{"code":0,"da',
                b'ta":{"answer":"Hi there"}}\nnot json\n',
                b'{"code":0,"data":true}',
            ),
        )

    answer = await ask(
        configuration, "hello", user_id="u1", transport=httpx.MockTransport(handler)
    )
    assert answer == "Hi there"


@pytest.mark.asyncio
async def test_ask_raises_on_error_frame(configuration):
    def handler(request):
        return httpx.Response(
            200,
            content=body_chunks(
                b'data: {"code":100,"message":"Assistant unavailable","data":null}\n\n'
            ),
        )

    with pytest.raises(RelayError, match="Assistant unavailable") as exc_info:
        await ask(configuration, "hello", transport=httpx.MockTransport(handler))
    assert exc_info.value.code == 100
