"""
Structured logging configuration using structlog.

Standardized log format:
{
    "ts": "2025-11-18T04:30:00.123456Z",
    "level": "info",
    "service": "tagrelay",
    "correlation_id": "uuid-v4",
    "event": "relay.forward",
    "module": "tagrelay.services.relay.pipeline",
    "function": "relay",
    "line": 42,
    ...additional context...
}

Shared secrets and decrypted fragments are never passed to the logger.
"""
import structlog
import logging
from typing import Any

SERVICE_NAME = "tagrelay"


def service_name_adder(service_name: str):
    """Build a processor that adds the service name to all log entries."""

    def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", service_name)
        return event_dict

    return add_service_name


def rename_callsite_keys(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Map structlog's callsite keys onto our standard field names."""
    if "func_name" in event_dict:
        event_dict["function"] = event_dict.pop("func_name")
    if "lineno" in event_dict:
        event_dict["line"] = event_dict.pop("lineno")
    return event_dict


def setup_logging(json_output: bool = True, service_name: str = SERVICE_NAME):
    """
    Configure structured logging with standardized fields.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
        service_name: Name of the service (for multi-service deployments).
    """
    shared_processors = [
        # Includes correlation_id bound by the middleware
        structlog.contextvars.merge_contextvars,
        service_name_adder(service_name),
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        rename_callsite_keys,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [structlog.processors.JSONRenderer()]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=logging.INFO,
    )

    # Silence uvicorn's default logging to avoid duplicate logs
    logging.getLogger("uvicorn.error").handlers = []
    logging.getLogger("uvicorn.access").handlers = []
    # httpx logs every request at INFO, including relay target URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger():
    """Get a configured structlog logger."""
    return structlog.get_logger()
