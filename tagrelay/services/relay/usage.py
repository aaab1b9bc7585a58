"""Fire-and-forget usage accounting."""
import asyncio
from typing import Optional

import httpx
import orjson
import structlog

from ...config import Settings
from ...errors import AccountingFailure

log = structlog.get_logger()


class UsageTracker:
    """
    Reports relayed requests to the usage-accounting service.

    Reports run as detached tasks with their own timeout; a failed report
    is logged and dropped.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient, metrics=None):
        self._settings = settings
        self._client = client
        self._metrics = metrics
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self._settings.USAGE_API_URL)

    def track(self, count: int = 1) -> Optional[asyncio.Task]:
        """
        Schedule a usage report without waiting for it.

        Returns:
            The scheduled task, or None when tracking is disabled
        """
        if not self.enabled:
            return None
        task = asyncio.create_task(self._report_safely(count))
        # Keep a reference until done so the task is not collected mid-flight
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def report(self, count: int = 1) -> None:
        """
        Deliver one usage report.

        Raises:
            AccountingFailure: If the service is unreachable or rejects the report
        """
        headers = {
            "Content-Type": "application/json",
            "Referer": self._settings.upstream_origin,
        }
        if self._settings.MEASURELAKE_API_KEY:
            headers["X-API-Key"] = self._settings.MEASURELAKE_API_KEY
        try:
            response = await self._client.post(
                self._settings.USAGE_API_URL,
                content=orjson.dumps({"count": count}),
                headers=headers,
                timeout=self._settings.USAGE_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AccountingFailure(f"Usage report failed: {e}") from e

    async def _report_safely(self, count: int) -> None:
        try:
            await self.report(count)
        except AccountingFailure as e:
            log.warning("usage.report_failed", error=str(e))
            self._record("failure")
            return
        self._record("success")

    def _record(self, result: str) -> None:
        if self._metrics is not None:
            self._metrics.usage_reports_total.labels(result=result).inc()

    async def drain(self) -> None:
        """Wait for reports still in flight (used at shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
