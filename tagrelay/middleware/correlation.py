"""Correlation ID middleware for request tracing."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog
import uuid
from contextvars import ContextVar

from ..config import get_settings

# Context variable to store correlation ID across async context
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation IDs to all requests.

    - Extracts correlation ID from X-Correlation-ID header if present
    - Generates new UUID if not present
    - Binds correlation ID to structlog context
    - Adds correlation ID to response headers
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())

        correlation_id_var.set(correlation_id)
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            # Relay paths carry a token; only the route template is logged
            http_path=route_label(request),
        )

        response = await call_next(request)
        response.headers["x-correlation-id"] = correlation_id
        return response


def route_label(request: Request) -> str:
    """Request path with any relay token replaced by a placeholder."""
    prefix = get_settings().RELAY_PATH_PREFIX.rstrip("/") + "/"
    path = request.url.path
    if path.startswith(prefix):
        return prefix + "{token}"
    return path


def get_correlation_id() -> str:
    """Get the current correlation ID from context."""
    return correlation_id_var.get()
