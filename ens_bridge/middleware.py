"""
Request middleware: correlation IDs and HTTP metrics.
"""
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog

CORRELATION_HEADER = "x-correlation-id"
UNMATCHED_ROUTE = "unmatched"


def route_template(request: Request) -> str:
    """
    Path label for a handled request.

    The matched route's template (e.g. ``/api/events``), or UNMATCHED_ROUTE
    when no route handled it, so arbitrary paths never become new series.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ROUTE


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Binds a correlation ID to the structlog context of each request.

    The ID comes from the X-Correlation-ID header or is generated, and is
    echoed on the response. Background processing of a callback runs in
    the same context and logs under the same ID.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Records request counts, durations and in-flight requests per route.
    """

    def __init__(self, app, metrics):
        super().__init__(app)
        self.metrics = metrics

    def _observe(self, request: Request, status: int, duration: float) -> None:
        path = route_template(request)
        self.metrics.http_requests_total.labels(
            service=self.metrics.service_name,
            method=request.method,
            path=path,
            status=status,
        ).inc()
        self.metrics.http_request_duration.labels(
            service=self.metrics.service_name,
            method=request.method,
            path=path,
        ).observe(duration)

    async def dispatch(self, request: Request, call_next):
        # The exposition app mounted at /metrics is not instrumented
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        log = structlog.get_logger()
        self.metrics.http_requests_active.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start
            self._observe(request, 500, duration)
            log.error(
                "http_request_error",
                route=route_template(request),
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration * 1000, 2),
            )
            raise
        finally:
            self.metrics.http_requests_active.dec()

        duration = time.perf_counter() - start
        self._observe(request, response.status_code, duration)
        log.info(
            "http_request",
            route=route_template(request),
            http_status=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        return response
