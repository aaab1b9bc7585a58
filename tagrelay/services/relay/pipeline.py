"""
Relay pipeline

Turns an inbound relay request carrying a fragment token into the original
tag-manager request, forwards it upstream and streams the response back.

    AcquireSecret -> DecodeFragment -> DecodeBody -> BuildTarget
        -> Forward -> StreamBack -> Track (2xx only, detached)

Failures surface as exceptions mapped to responses by the API layer:
SecretUnavailable (503), FragmentError (400), UpstreamError (502).
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional
from urllib.parse import urlsplit

import httpx
import structlog
from starlette.background import BackgroundTask
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import StreamingResponse

from ...config import Settings
from ...errors import SecretUnavailable, UpstreamError
from ..crypto import FragmentCodec, FragmentError, Secret, SecretProvisioner
from .client_ip import resolve_client_ip
from .cookies import rewrite_set_cookie
from .target import build_target_url
from .usage import UsageTracker

log = structlog.get_logger()

# Inbound headers that are rebuilt or recomputed rather than passed through
REQUEST_SKIP_HEADERS = {
    "host",
    "content-length",
    "transfer-encoding",
    "connection",
    "keep-alive",
    "x-forwarded-for",
}
RESPONSE_SKIP_HEADERS = {"content-length", "transfer-encoding"}
BODYLESS_METHODS = {"GET", "HEAD"}
DEFAULT_PORTS = {"http": 80, "https": 443}


def extend_forwarded_for(
    chain: Optional[str], client_ip: Optional[str], peer_ip: Optional[str] = None
) -> Optional[str]:
    """
    Extend an X-Forwarded-For chain.

    ``client_ip`` is appended unless it is already a hop. When it was taken
    from the chain itself, the transport peer is appended instead so the
    hop that reached the relay is still recorded.
    """
    if not client_ip:
        return chain
    if not chain:
        return client_ip
    hops = [hop.strip() for hop in chain.split(",")]
    if client_ip not in hops:
        return f"{chain}, {client_ip}"
    if peer_ip and peer_ip not in hops:
        return f"{chain}, {peer_ip}"
    return chain


def host_header(url: str) -> str:
    """Upstream hostname, with the port only when it is not the scheme default."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if parts.port and parts.port != DEFAULT_PORTS.get(parts.scheme):
        host = f"{host}:{parts.port}"
    return host


class BodyMode(str, Enum):
    NONE = "none"
    DECODED = "decoded"
    RAW = "raw-passthrough"


@dataclass(frozen=True)
class DecodedBody:
    mode: BodyMode
    content: bytes = b""


@dataclass(frozen=True)
class InboundRequest:
    """One request received on the relay ingress."""
    method: str
    token: str
    body: bytes
    query: str
    headers: Headers
    host: str
    peer_ip: Optional[str] = None

    @classmethod
    async def from_request(cls, request: Request, token: str) -> "InboundRequest":
        return cls(
            method=request.method.upper(),
            token=token,
            body=await request.body(),
            query=request.url.query,
            headers=request.headers,
            host=request.headers.get("host") or request.url.hostname or "",
            peer_ip=request.client.host if request.client else None,
        )


@dataclass(frozen=True)
class OutboundRequest:
    """Reconstructed request for the upstream server."""
    method: str
    url: str
    headers: list[tuple[str, str]]
    content: Optional[bytes] = None


class RelayPipeline:
    """
    Decode, forward and stream back relay requests.

    Holds no per-request state; one instance serves all requests.
    """

    def __init__(
        self,
        settings: Settings,
        provisioner: SecretProvisioner,
        client: httpx.AsyncClient,
        usage: Optional[UsageTracker] = None,
        metrics=None,
    ):
        self._settings = settings
        self._provisioner = provisioner
        self._client = client
        self._usage = usage
        self._metrics = metrics

    async def relay(self, inbound: InboundRequest) -> StreamingResponse:
        """
        Run the full pipeline for one inbound request.

        Raises:
            SecretUnavailable: No fresh secret; nothing is sent upstream
            FragmentError: The path token is malformed or fails authentication
            UpstreamError: The upstream server could not be reached
        """
        try:
            secret = await self._provisioner.get_secret()
            fragment = FragmentCodec.decode(secret, inbound.token)
            body = self.decode_body(secret, inbound.body)
            outbound = self.build_outbound(inbound, fragment, body)
            upstream = await self.forward(outbound)
        except SecretUnavailable:
            self._record("secret_unavailable")
            raise
        except FragmentError:
            log.warning("relay.bad_fragment", token_length=len(inbound.token))
            self._record("bad_fragment")
            raise
        except UpstreamError:
            self._record("upstream_error")
            raise

        self._record("relayed")
        return self.stream_back(upstream, inbound)

    def decode_body(self, secret: Secret, raw: bytes) -> DecodedBody:
        """
        Best-effort decryption of the request body.

        Not every body is a fragment token, so a body that does not decode
        is forwarded unchanged.
        """
        if not raw:
            return DecodedBody(BodyMode.NONE)
        try:
            plaintext = FragmentCodec.decode(secret, raw.decode("utf-8").strip())
        except (UnicodeDecodeError, FragmentError):
            return DecodedBody(BodyMode.RAW, raw)
        return DecodedBody(BodyMode.DECODED, plaintext.encode("utf-8"))

    def build_outbound(
        self, inbound: InboundRequest, fragment: str, body: DecodedBody
    ) -> OutboundRequest:
        client_ip = resolve_client_ip(inbound.headers, inbound.peer_ip)
        url = build_target_url(
            self._settings.GTM_SERVER_URL,
            fragment,
            inbound_query=inbound.query,
            client_ip=client_ip,
            ip_param_keys=self._settings.ip_param_keys,
        )

        headers = [
            (k, v) for k, v in inbound.headers.items()
            if k.lower() not in REQUEST_SKIP_HEADERS
        ]
        headers.append(("host", host_header(url)))

        forwarded_for = extend_forwarded_for(
            inbound.headers.get("x-forwarded-for"), client_ip, inbound.peer_ip
        )
        if forwarded_for:
            headers.append(("x-forwarded-for", forwarded_for))

        content = None
        if inbound.method not in BODYLESS_METHODS and body.mode is not BodyMode.NONE:
            content = body.content
            if "content-type" not in inbound.headers:
                headers.append(("content-type", "text/plain"))

        return OutboundRequest(
            method=inbound.method,
            url=url,
            headers=headers,
            content=content,
        )

    async def forward(self, outbound: OutboundRequest) -> httpx.Response:
        """
        Send the reconstructed request and return the streaming response.

        Raises:
            UpstreamError: On any transport failure (no response received)
        """
        request = self._client.build_request(
            outbound.method,
            outbound.url,
            headers=outbound.headers,
            content=outbound.content,
            timeout=self._settings.UPSTREAM_TIMEOUT_SECONDS,
        )
        start_time = time.time()
        try:
            response = await self._client.send(request, stream=True)
        except httpx.RequestError as e:
            log.error(
                "relay.upstream_unreachable",
                error=str(e),
                error_type=type(e).__name__,
                upstream_host=request.url.host,
            )
            raise UpstreamError(f"Upstream request failed: {e}") from e

        if self._metrics is not None:
            self._metrics.upstream_duration.observe(time.time() - start_time)
        log.info(
            "relay.forward",
            method=outbound.method,
            upstream_host=request.url.host,
            upstream_status=response.status_code,
        )
        return response

    def stream_back(self, upstream: httpx.Response, inbound: InboundRequest) -> StreamingResponse:
        """
        Relay status, headers and body of the upstream response.

        Set-Cookie headers are scoped to the inbound host's registrable
        domain. The body is streamed chunk by chunk as received.
        """
        response = StreamingResponse(
            self._iter_body(upstream),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        for name, value in upstream.headers.multi_items():
            lname = name.lower()
            if lname in RESPONSE_SKIP_HEADERS:
                continue
            if lname == "set-cookie":
                value = rewrite_set_cookie(value, inbound.host)
            response.headers.append(name, value)
        return response

    async def _iter_body(self, upstream: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        finally:
            await upstream.aclose()

        # Only reached when the whole body was delivered
        if self._usage is not None and upstream.is_success:
            self._usage.track()

    def _record(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.relay_requests_total.labels(outcome=outcome).inc()
