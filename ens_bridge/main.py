"""
ENS Bridge - Marketing Cloud ENS webhook receiver.

Features:
- Signed ENS callback ingestion, always acknowledged with HTTP 200
- Inbound WhatsApp messages forwarded to Salesforce Core records (JWT bearer flow)
- In-memory store of recent events with a polling dashboard
- Structured logging with correlation IDs
- Prometheus metrics and health checks
"""
from typing import Optional
import httpx
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .adapters.base import RecordSink
from .adapters.memory import InMemoryEventStore
from .adapters.salesforce import SalesforceRecordSink
from .api import dashboard_router, router
from .api.dependencies import get_health_checker
from .config import Settings, get_settings
from .health import HealthChecker
from .logging import SERVICE_NAME, setup_logging, get_logger
from .metrics import Metrics
from .middleware import CorrelationIdMiddleware, MetricsMiddleware
from .services.credentials import CredentialCache
from .services.pipeline import IngestionPipeline

VERSION = "0.1.0"

logger = get_logger()


def create_app(
    settings: Optional[Settings] = None,
    sink: Optional[RecordSink] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application and the components it owns.

    Args:
        settings: Settings to use (defaults to the environment)
        sink: Record sink to use instead of the Salesforce sink
        http_client: HTTP client for Salesforce calls (defaults to a new
            client with HTTP_TIMEOUT_SECONDS)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    setup_logging(json_output=settings.LOG_JSON, level=settings.LOG_LEVEL)

    metrics = Metrics(service_name=SERVICE_NAME, version=VERSION)
    store = InMemoryEventStore(max_events=settings.MAX_EVENTS)

    credentials = None
    owned_client = None
    if sink is None and settings.salesforce_enabled:
        if http_client is None:
            http_client = owned_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        credentials = CredentialCache(settings, http_client, metrics=metrics)
        sink = SalesforceRecordSink(settings, credentials, http_client)

    pipeline = IngestionPipeline(settings, store, sink=sink, metrics=metrics)
    health_checker = HealthChecker(settings, store, credentials, version=VERSION)

    app = FastAPI(
        title="ENS Bridge",
        version=VERSION,
        description="Marketing Cloud ENS to Salesforce bridge with an event dashboard",
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.health_checker = health_checker

    # Last added runs outermost: correlation ID is bound before metrics log
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router.router)
    app.include_router(dashboard_router.router)
    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    @app.get("/health")
    async def health(checker: HealthChecker = Depends(get_health_checker)):
        """Liveness probe with the number of events held in memory."""
        logger.debug("health_check_liveness")
        return checker.liveness()

    @app.get("/health/ready")
    async def health_ready(checker: HealthChecker = Depends(get_health_checker)):
        """
        Readiness probe.

        Returns:
            200: Service is ready to handle traffic
            503: Service is not ready
        """
        result = checker.readiness()
        return JSONResponse(result, status_code=200 if result["status"] == "ready" else 503)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "service_starting",
            version=VERSION,
            env=settings.ENV,
            salesforce_enabled=pipeline.sink_enabled,
            salesforce_instance=settings.SF_INSTANCE_URL,
            max_events=settings.MAX_EVENTS,
        )
        if not pipeline.sink_enabled:
            logger.warning(
                "salesforce.disabled",
                message="Running in monitoring-only mode; events are logged and shown on the dashboard",
            )
        if not settings.ENS_SIGNATURE_KEY:
            logger.warning(
                "signature.key_missing",
                message="ENS_SIGNATURE_KEY not configured; callbacks are acknowledged but not processed",
            )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("service_stopping")
        metrics.app_up.labels(service=SERVICE_NAME, version=VERSION).set(0)
        if sink is not None:
            await sink.aclose()
        if owned_client is not None:
            await owned_client.aclose()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ens_bridge.main:app",
        host="0.0.0.0",
        port=get_settings().PORT,
    )
