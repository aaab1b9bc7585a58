"""
Tag relay - obfuscating relay for tag-manager traffic.

Features:
- Key distribution endpoint for the browser interceptor
- Relay ingress that decrypts fragment tokens and forwards upstream
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from . import __version__, dependencies
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.key_router import router as key_router
from .api.relay_router import router as relay_router
from .middleware import (
    BodySizeLimitMiddleware,
    CorrelationIdMiddleware,
    ErrorHandlerMiddleware,
    MetricsMiddleware,
    register_exception_handlers,
)
from .metrics import Metrics
from .health import HealthChecker

settings = get_settings()

setup_logging(json_output=settings.LOG_JSON, service_name="tagrelay")
logger = get_logger()

metrics = Metrics(service_name="tagrelay", version=__version__)
dependencies.set_metrics(metrics)

health_checker = HealthChecker(service_name="tagrelay", version=__version__)

app = FastAPI(
    title="Tag Relay",
    version=__version__,
    description="Obfuscating relay for tag-manager requests",
)

# Added innermost first; the correlation ID wraps everything else
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(BodySizeLimitMiddleware, max_size=settings.MAX_BODY_SIZE)
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

app.include_router(key_router)
app.include_router(relay_router)

metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready(provisioner=Depends(dependencies.get_secret_provisioner)):
    """
    Readiness probe - comprehensive health check.

    Checks:
    - A fresh shared secret is held
    - Disk space availability
    - Memory availability

    Returns:
        200: Service is ready to relay traffic
        503: Service is not ready
    """
    logger.debug("health_check_readiness")
    metrics.update_system_metrics()
    result = await health_checker.readiness(provisioner.store)
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


@app.on_event("startup")
async def startup_event():
    """
    Startup event handler.

    Validates configuration (fatal when incomplete) and starts the
    background secret refresh. The first fetch runs in the background so
    health checks are served immediately.
    """
    settings.require()
    logger.info(
        "service_starting",
        version=__version__,
        env=settings.ENV,
        upstream=settings.upstream_origin,
        usage_tracking=bool(settings.USAGE_API_URL),
    )
    dependencies.get_secret_provisioner().start()


@app.on_event("shutdown")
async def shutdown_event():
    """
    Shutdown event handler.

    Stops the refresh loop and closes outbound connections.
    """
    logger.info("service_stopping")
    await dependencies.close()
    metrics.app_up.labels(service="tagrelay", version=__version__).set(0)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tagrelay.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
    )
