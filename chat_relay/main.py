"""
Entry point for the chat relay.

Usage:
    chat-relay serve                      # Run the HTTP relay
    chat-relay serve --port 8080          # Custom port
    chat-relay ask "What is SSE?"         # One question straight to the backend
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx
import uvicorn
from fastapi import FastAPI

from .app import create_app
from .config import Configuration
from .exceptions import RelayError
from .logging_utils import configure_logging
from .streaming.consumer import CompletionStreamParser
from .streaming.models import CompletionEventType
from .streaming.reframer import reframe_stream
from .upstream import CompletionRequest, UpstreamClient


def build_app() -> FastAPI:
    """Application factory used by uvicorn workers."""
    configuration = Configuration()
    configure_logging(configuration.get_logging_config())
    return create_app(configuration)


async def ask(
    configuration: Configuration,
    question: str,
    *,
    session_id: str | None = None,
    user_id: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Send one question upstream and return the final answer text.

    The upstream body goes through the same reframing the HTTP route uses,
    then through the consuming-side parser.

    Raises:
        RelayError: If the stream ends with an error frame.
    """
    policy = configuration.get_streaming_config()["malformed_line_policy"]
    parser = CompletionStreamParser(malformed_policy=policy)
    request = CompletionRequest(
        user_id=user_id, question=question, session_id=session_id
    )

    answer = ""
    async with UpstreamClient(configuration, transport=transport) as upstream:
        response = await upstream.open_completion(request)
        frames = reframe_stream(UpstreamClient.iter_text(response))
        try:
            async for event in parser.parse(frames):
                if event.event_type == CompletionEventType.ERROR:
                    raise RelayError(event.message or "Stream error", code=event.code)
                if event.event_type == CompletionEventType.ANSWER:
                    answer = event.answer or ""
        finally:
            await frames.aclose()

    logging.info(f"Stream parser stats: {parser.get_stats()}")
    return answer


def serve(configuration: Configuration, args: argparse.Namespace) -> None:
    server_config = configuration.get_server_config()
    host = args.host or server_config["host"]
    port = args.port or server_config["port"]

    logging.info(f"Starting chat relay on http://{host}:{port}")
    uvicorn.run(
        "chat_relay.main:build_app",
        factory=True,
        host=host,
        port=port,
        workers=server_config["workers"],
        timeout_keep_alive=server_config["keepalive_timeout"],
        access_log=server_config.get("access_log", True),
    )


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="chat-relay",
        description="SSE relay between a chat UI and its conversational backend",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP relay")
    serve_parser.add_argument("--host", help="Host to bind to (default: config.yaml)")
    serve_parser.add_argument(
        "--port", "-p", type=int, help="Port to bind to (default: config.yaml)"
    )

    ask_parser = subparsers.add_parser("ask", help="Ask the backend one question")
    ask_parser.add_argument("question")
    ask_parser.add_argument("--session-id")
    ask_parser.add_argument("--user-id")

    args = parser.parse_args()

    configuration = Configuration()
    configure_logging(configuration.get_logging_config())

    if args.command == "ask":
        try:
            answer = asyncio.run(
                ask(
                    configuration,
                    args.question,
                    session_id=args.session_id,
                    user_id=args.user_id,
                )
            )
        except RelayError as e:
            logging.error(f"Relay error ({e.code}): {e.message}")
            sys.exit(1)
        print(answer)
        return

    if args.command is None:
        args = serve_parser.parse_args([])
    serve(configuration, args)


if __name__ == "__main__":
    main()
