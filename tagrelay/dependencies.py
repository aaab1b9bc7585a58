"""
Shared service instances and their FastAPI dependency getters.

Instances are created on first use so tests can replace them through
``app.dependency_overrides`` before anything touches the network.
"""
from typing import Optional

import httpx

from .config import get_settings
from .services.crypto import SecretProvisioner, SecretStore
from .services.relay import RelayPipeline, UsageTracker

_metrics = None
_http_client: Optional[httpx.AsyncClient] = None
_provisioner: Optional[SecretProvisioner] = None
_usage_tracker: Optional[UsageTracker] = None
_pipeline: Optional[RelayPipeline] = None


def set_metrics(metrics) -> None:
    """Set the Metrics instance handed to services created afterwards."""
    global _metrics
    _metrics = metrics


def get_http_client() -> httpx.AsyncClient:
    """Shared outbound client (upstream, key issuer, usage service)."""
    global _http_client
    if _http_client is None:
        settings = get_settings()
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS, connect=10.0),
            follow_redirects=False,
        )
    return _http_client


def get_secret_provisioner() -> SecretProvisioner:
    global _provisioner
    if _provisioner is None:
        _provisioner = SecretProvisioner(
            get_settings(), get_http_client(), SecretStore(), metrics=_metrics
        )
    return _provisioner


def get_usage_tracker() -> UsageTracker:
    global _usage_tracker
    if _usage_tracker is None:
        _usage_tracker = UsageTracker(get_settings(), get_http_client(), metrics=_metrics)
    return _usage_tracker


def get_relay_pipeline() -> RelayPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = RelayPipeline(
            get_settings(),
            get_secret_provisioner(),
            get_http_client(),
            usage=get_usage_tracker(),
            metrics=_metrics,
        )
    return _pipeline


async def close() -> None:
    """Stop background work and release connections."""
    global _http_client, _provisioner, _usage_tracker, _pipeline
    if _provisioner is not None:
        await _provisioner.shutdown()
    if _usage_tracker is not None:
        await _usage_tracker.drain()
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = _provisioner = _usage_tracker = _pipeline = None
