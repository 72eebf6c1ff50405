"""
Signed connection settings for the TTS provider.

The browser opens the provider's WebSocket itself; the relay only signs the
URL so the API secret never leaves the server.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import Any
from urllib.parse import quote

# Characters left unescaped by JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


def _encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def http_date(now: datetime | None = None) -> str:
    """RFC 1123 date in GMT, e.g. ``Sun, 18 Oct 2026 08:00:00 GMT``."""
    return format_datetime(now or datetime.now(UTC), usegmt=True)


def sign_request_line(secret: str, host: str, date: str, path: str) -> str:
    """Base64 HMAC-SHA256 over the host, date and request line."""
    string_to_sign = f"host: {host}\ndate: {date}\nGET {path} HTTP/1.1"
    digest = hmac.new(
        secret.encode(), string_to_sign.encode(), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode()


def build_tts_config(
    credentials: dict[str, str],
    tts_config: dict[str, Any],
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Build the ``{wsUrl, appId, resId}`` settings handed to the browser.

    Args:
        credentials: api_key, api_secret, app_id and res_id
        tts_config: host and path of the provider endpoint
        now: timestamp to sign, defaults to the current time

    Returns:
        JSON-serialisable settings dictionary
    """
    host = tts_config["host"]
    path = tts_config["path"]
    date = http_date(now)

    signature = sign_request_line(credentials["api_secret"], host, date, path)
    auth_origin = (
        f'api_key="{credentials["api_key"]}", algorithm="hmac-sha256", '
        f'headers="host date request-line", signature="{signature}"'
    )
    authorization = base64.b64encode(auth_origin.encode()).decode()

    ws_url = (
        f"wss://{host}{path}"
        f"?authorization={_encode_component(authorization)}"
        f"&date={_encode_component(date)}"
        f"&host={_encode_component(host)}"
    )

    return {
        "wsUrl": ws_url,
        "appId": credentials["app_id"],
        "resId": credentials["res_id"],
    }
