"""HTTP middleware for the relay service."""
from .correlation import CorrelationIdMiddleware, get_correlation_id
from .error_handler import ErrorHandlerMiddleware, register_exception_handlers
from .metrics import MetricsMiddleware
from .body_limit import BodySizeLimitMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "get_correlation_id",
    "ErrorHandlerMiddleware",
    "register_exception_handlers",
    "MetricsMiddleware",
    "BodySizeLimitMiddleware",
]
