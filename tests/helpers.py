"""Builders and fake services shared by the test modules."""
import inspect
from datetime import timedelta

import httpx

from tagrelay.config import Settings
from tagrelay.services.crypto import Secret
from tagrelay.services.crypto.secret_models import utcnow

KEY_32 = "0123456789abcdef0123456789abcdef"
KEY_ISSUER_URL = "https://keys.example.test/givemekey"
USAGE_URL = "https://usage.example.test/track"
UPSTREAM_URL = "https://gtm.example.net/"


def make_settings(**overrides) -> Settings:
    values = {
        "GTM_SERVER_URL": UPSTREAM_URL,
        "MEASURELAKE_API_KEY": "test-api-key",
        "KEY_API_URL": KEY_ISSUER_URL,
        "USAGE_API_URL": "",
        "IP_PARAM_KEYS": "uip,ip",
    }
    values.update(overrides)
    return Settings(**values)


def make_secret(key: str = KEY_32, ttl_seconds: int = 3600) -> Secret:
    return Secret(key=key, expires_at=utcnow() + timedelta(seconds=ttl_seconds))


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        async def recording_handler(request: httpx.Request):
            self.requests.append(request)
            result = handler(request)
            if inspect.isawaitable(result):
                result = await result
            return result

        super().__init__(recording_handler)


def key_issuer(key: str = KEY_32, ttl_seconds: int = 3600, status_code: int = 200):
    """Handler simulating the key-issuing service."""

    def handler(request: httpx.Request) -> httpx.Response:
        if status_code != 200:
            return httpx.Response(status_code, json={"error": "unavailable"})
        expiry = utcnow() + timedelta(seconds=ttl_seconds)
        return httpx.Response(200, json={"key": key, "key_expiry": expiry.isoformat()})

    return handler


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in separate chunks, like a live upstream."""

    def __init__(self, *chunks: bytes):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def upstream_response(status_code: int = 200, headers=None, *chunks: bytes) -> httpx.Response:
    """Streaming upstream response; the relay reads it with ``aiter_raw``."""
    return httpx.Response(status_code, headers=headers, stream=ChunkedStream(*chunks))
