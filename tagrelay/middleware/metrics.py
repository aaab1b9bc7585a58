"""Prometheus HTTP metrics middleware."""
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog

from .correlation import route_label


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP metrics for Prometheus.

    - Records request count by method, path, status
    - Records request duration histogram
    - Tracks active requests

    Relay paths are labelled by route template so tokens never become
    label values.
    """

    def __init__(self, app, metrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        path = route_label(request)
        active = self.metrics.http_requests_active.labels(service=self.metrics.service_name)
        active.inc()
        start_time = time.time()
        logger = structlog.get_logger()

        try:
            response = await call_next(request)
            duration = time.time() - start_time

            self.metrics.http_requests_total.labels(
                service=self.metrics.service_name,
                method=request.method,
                path=path,
                status=response.status_code,
            ).inc()

            self.metrics.http_request_duration.labels(
                service=self.metrics.service_name,
                method=request.method,
                path=path,
            ).observe(duration)

            logger.info(
                "http_request",
                http_status=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )

            return response

        except Exception as e:
            duration = time.time() - start_time

            self.metrics.http_requests_total.labels(
                service=self.metrics.service_name,
                method=request.method,
                path=path,
                status=500,
            ).inc()

            logger.error(
                "http_request_error",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration * 1000, 2),
            )

            raise

        finally:
            active.dec()
