"""Generic error response middleware."""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from ..errors import SecretUnavailable, UpstreamError
from ..services.crypto import FragmentError
from .correlation import get_correlation_id

log = structlog.get_logger()


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    """Build a detail-free error body; diagnostics stay in the server log."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "correlation_id": get_correlation_id(),
        },
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns unhandled exceptions into a generic 500 response."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
            return error_response(
                500, "InternalServerError", "An internal server error occurred"
            )


def register_exception_handlers(app) -> None:
    """Map relay failures onto generic responses."""

    async def handle_fragment_error(request: Request, exc: FragmentError):
        return error_response(400, "BadRequest", "Invalid request")

    async def handle_secret_unavailable(request: Request, exc: SecretUnavailable):
        log.warning("secret.unavailable", error=str(exc))
        return error_response(503, "ServiceUnavailable", "Encryption key not available")

    async def handle_upstream_error(request: Request, exc: UpstreamError):
        return error_response(exc.status_code, "BadGateway", "Upstream request failed")

    app.add_exception_handler(FragmentError, handle_fragment_error)
    app.add_exception_handler(SecretUnavailable, handle_secret_unavailable)
    app.add_exception_handler(UpstreamError, handle_upstream_error)
