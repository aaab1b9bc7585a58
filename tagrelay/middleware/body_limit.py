"""Request body size limit for the relay ingress."""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from .error_handler import error_response

log = structlog.get_logger()


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects request bodies larger than ``max_size`` bytes with 413."""

    def __init__(self, app, max_size: int):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            content_length = request.headers.get("content-length")
            try:
                size = int(content_length) if content_length else None
            except ValueError:
                return error_response(400, "BadRequest", "Invalid Content-Length")

            if size is None:
                # Chunked upload: measure the body itself
                body = await request.body()
                size = len(body)

            if size > self.max_size:
                log.warning("payload.too_large", size=size, max_size=self.max_size)
                return error_response(
                    413, "PayloadTooLarge",
                    f"Request payload exceeds maximum size of {self.max_size} bytes",
                )

        return await call_next(request)
