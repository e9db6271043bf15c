"""
OpenLineage proxy - sequenced, durable storage of lineage events.

Features:
- Collision-free, sortable event identifiers from a shared counter
- Pluggable storage (filesystem, object store, database)
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import make_asgi_app
from . import __version__
from .config import get_settings
from .logging import SERVICE_NAME, setup_logging, get_logger
from .api.router import router
from .middleware import CorrelationIdMiddleware, ErrorHandlerMiddleware, MetricsMiddleware
from .metrics import metrics
from .health import HealthChecker
from .services.allocator import Allocator, get_allocator

settings = get_settings()

setup_logging(json_output=settings.LOG_JSON)
logger = get_logger()

health_checker = HealthChecker(service_name=SERVICE_NAME, version=__version__)

app = FastAPI(
    title="OpenLineage Proxy",
    version=__version__,
    description="Receives OpenLineage events and stores each one under a unique sequenced identifier",
)

# Last added runs first: correlation ID, then error handling, then metrics
app.add_middleware(MetricsMiddleware, metrics=metrics)
app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(router)

metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.api_route("/api/health", methods=["GET", "HEAD"])
async def health(request: Request):
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    if request.method == "HEAD":
        return Response(status_code=200)
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/api/health/ready")
async def health_ready(allocator: Allocator = Depends(get_allocator)):
    """
    Readiness probe.

    Returns:
        200: Events can be allocated and stored
        503: Storage is not usable
    """
    logger.debug("health_check_readiness")
    result = await health_checker.readiness(allocator)
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(content=result, status_code=status_code)


@app.on_event("startup")
async def startup_event():
    logger.info(
        "service_starting",
        version=__version__,
        env=settings.ENV,
        storage_backend=settings.STORAGE_BACKEND,
        coordination=settings.COORDINATION,
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("service_stopping")
    metrics.app_up.labels(service=SERVICE_NAME, version=__version__).set(0)
    if get_allocator.cache_info().currsize:
        await get_allocator().close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lineage_proxy.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
    )
