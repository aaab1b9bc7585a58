"""
Secret provisioning from the key-issuing service
"""

import asyncio
from typing import Optional

import httpx
import orjson
import structlog

from ...config import Settings
from ...errors import SecretUnavailable
from .secret_models import KeyIssuanceResponse, Secret
from .secret_store import SecretStore

log = structlog.get_logger()


class SecretProvisioner:
    """
    Fetches the shared secret and keeps the store populated.

    - ``get_secret()`` serves the cached secret while it is fresh and
      fetches a new one otherwise (lazy refresh)
    - a background loop calls ``refresh()`` on a fixed interval
    - all fetches are serialized on one lock, so at most one is in flight
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        store: Optional[SecretStore] = None,
        metrics=None,
    ):
        """
        Initialize SecretProvisioner

        Args:
            settings: Relay settings (issuer URL, credentials, interval)
            client: HTTP client used to reach the key-issuing service
            store: Secret store to populate (creates new if not provided)
            metrics: Optional Metrics instance
        """
        self._settings = settings
        self._client = client
        self._store = store or SecretStore()
        self._metrics = metrics
        self._lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def store(self) -> SecretStore:
        return self._store

    async def get_secret(self) -> Secret:
        """
        Get a fresh secret, fetching one if the cached secret has expired.

        Concurrent callers that find the secret stale wait on the same lock;
        once the first of them has fetched, the rest see the new snapshot.

        Returns:
            Secret with ``now < expires_at``

        Raises:
            SecretUnavailable: If no fresh secret could be provisioned
        """
        secret = self._store.fresh()
        if secret is not None:
            return secret

        async with self._lock:
            secret = self._store.fresh()
            if secret is None:
                await self._fetch()
                secret = self._store.fresh()

        if secret is None:
            raise SecretUnavailable("Encryption key not available")
        return secret

    async def refresh(self) -> bool:
        """
        Fetch a new secret unconditionally.

        Returns:
            True if the store now holds the new secret, False on failure
            (the store is left empty)
        """
        async with self._lock:
            return await self._fetch()

    def _request_headers(self) -> dict:
        # The issuer identifies the client by the upstream origin
        headers = {"Referer": self._settings.upstream_origin}
        if self._settings.MEASURELAKE_API_KEY:
            headers["X-API-Key"] = self._settings.MEASURELAKE_API_KEY
        if self._settings.KEY_API_BEARER_TOKEN:
            headers["Authorization"] = f"Bearer {self._settings.KEY_API_BEARER_TOKEN}"
        return headers

    async def _fetch(self) -> bool:
        """Fetch from the issuer; caller must hold the lock."""
        log.info("secret.refresh_started", url=self._settings.KEY_API_URL)
        try:
            response = await self._client.get(
                self._settings.KEY_API_URL,
                headers=self._request_headers(),
            )
            response.raise_for_status()
            issued = KeyIssuanceResponse.model_validate(orjson.loads(response.content))
            secret = issued.to_secret()
            if secret.is_expired:
                raise ValueError("Issued key is already expired")
        except (httpx.HTTPError, ValueError) as e:
            # A stale secret is never served; the next request retries
            self._store.clear()
            log.warning(
                "secret.refresh_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            self._record("failure")
            return False

        self._store.replace(secret)
        log.info("secret.refreshed", expires_at=secret.expires_at.isoformat())
        self._record("success")
        return True

    def _record(self, result: str) -> None:
        if self._metrics is not None:
            self._metrics.secret_refresh_total.labels(result=result).inc()

    def start(self, interval_seconds: Optional[float] = None) -> None:
        """
        Start the background refresh loop.

        The first refresh runs immediately, then every ``interval_seconds``
        (defaults to KEY_REFRESH_INTERVAL_SECONDS). Must be called from a
        running event loop.
        """
        if self._refresh_task is not None and not self._refresh_task.done():
            return

        interval = interval_seconds or self._settings.KEY_REFRESH_INTERVAL_SECONDS
        self._refresh_task = asyncio.create_task(self._run_refresh(interval))

    async def _run_refresh(self, interval: float) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as e:
                log.error("secret.refresh_loop_error", error=str(e), exc_info=True)
            await asyncio.sleep(interval)

    async def shutdown(self) -> None:
        """Cancel the background refresh loop"""
        if self._refresh_task is None:
            return
        self._refresh_task.cancel()
        try:
            await self._refresh_task
        except asyncio.CancelledError:
            pass
        self._refresh_task = None
        log.info("secret.refresh_stopped")
