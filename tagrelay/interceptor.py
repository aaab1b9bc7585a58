"""
Client side of the relay protocol.

The browser script rewrites outgoing tag-manager calls before they leave the
page. This module expresses the same contract as data plus one rewrite
function, so it can be exercised outside a browser:

- the secret is fetched from the key distribution endpoint and cached until
  its expiry
- any call whose URL starts with the configured tag-manager origin is
  rerouted to ``<relay><prefix>/<urlencoded token>``
- string bodies of write calls are encoded as tokens as well
- all other calls pass through untouched
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union
from urllib.parse import quote

import httpx
import structlog

from .services.crypto import FragmentCodec, KeyDistributionResponse, Secret

log = structlog.get_logger()


class CallKind(str, Enum):
    """Browser call sites the interceptor covers."""
    SCRIPT = "script"
    IFRAME = "iframe"
    FETCH = "fetch"
    XHR = "xhr"
    BEACON = "beacon"
    IMAGE = "image"


@dataclass(frozen=True)
class InterceptRule:
    """
    Which calls to reroute and where.

    Attributes:
        target_origin: Tag-manager base URL to match (prefix match)
        relay_base_url: Origin of the relay service
        path_prefix: Relay ingress prefix
        key_path: Key distribution path on the relay
        write_methods: Methods whose string bodies are encoded
    """
    target_origin: str
    relay_base_url: str
    path_prefix: str = "/proxy"
    key_path: str = "/api/get-key"
    write_methods: frozenset = frozenset({"POST", "PUT", "PATCH"})

    def matches(self, url: str) -> bool:
        return isinstance(url, str) and url.startswith(self.target_origin)

    def relative(self, url: str) -> str:
        """Path and query of ``url`` relative to the target origin."""
        return url[len(self.target_origin):].lstrip("/")

    @property
    def key_url(self) -> str:
        return self.relay_base_url.rstrip("/") + self.key_path

    def relay_url(self, token: str) -> str:
        prefix = "/" + self.path_prefix.strip("/")
        return f"{self.relay_base_url.rstrip('/')}{prefix}/{quote(token, safe='')}"


@dataclass(frozen=True)
class OutboundCall:
    kind: CallKind
    url: str
    method: str = "GET"
    body: Optional[Union[str, bytes]] = None


class Interceptor:
    """
    Rewrites outbound calls according to an ``InterceptRule``.

    The secret is taken from the relay's key distribution endpoint and
    re-fetched once the cached copy has expired.
    """

    def __init__(self, rule: InterceptRule, client: httpx.AsyncClient):
        self.rule = rule
        self._client = client
        self._secret: Optional[Secret] = None

    async def get_secret(self) -> Secret:
        """
        Get the cached secret, fetching a new one when missing or expired.

        Raises:
            httpx.HTTPError: If the key endpoint is unreachable or returns an error
            pydantic.ValidationError: If the body lacks a usable key or expiry
        """
        if self._secret is not None and not self._secret.is_expired:
            return self._secret

        response = await self._client.get(self.rule.key_url)
        response.raise_for_status()
        issued = KeyDistributionResponse.model_validate_json(response.content)
        self._secret = Secret(key=issued.key, expires_at=issued.expiry)
        log.debug("interceptor.key_loaded", expires_at=self._secret.expires_at.isoformat())
        return self._secret

    async def rewrite_url(self, url: str) -> str:
        if not self.rule.matches(url):
            return url
        secret = await self.get_secret()
        return self.rule.relay_url(FragmentCodec.encode(secret, self.rule.relative(url)))

    async def rewrite(self, call: OutboundCall) -> OutboundCall:
        """
        Apply the rule to one call.

        Returns:
            The rerouted call, or ``call`` itself when the URL does not match
        """
        if not self.rule.matches(call.url):
            return call

        secret = await self.get_secret()
        token = FragmentCodec.encode(secret, self.rule.relative(call.url))
        body = call.body
        if call.method.upper() in self.rule.write_methods and isinstance(body, str):
            body = FragmentCodec.encode(secret, body)

        return replace(call, url=self.rule.relay_url(token), body=body)
