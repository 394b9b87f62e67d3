"""Prometheus metrics middleware for HTTP requests."""
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=["method", "route", "status_code"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "route", "status_code"],
)

http_exceptions_total = Counter(
    "http_exceptions_total",
    "Requests that raised past every exception handler",
    labelnames=["method", "route", "error_type"],
)


def _route_label(request: Request) -> str:
    """Route template (/v1/subscriptions/{subscription_id}) so ids don't explode label cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Records duration and count of every request except /metrics scrapes."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            http_exceptions_total.labels(
                method=request.method,
                route=_route_label(request),
                error_type=type(exc).__name__,
            ).inc()
            raise

        route = _route_label(request)
        http_request_duration_seconds.labels(
            method=request.method,
            route=route,
            status_code=response.status_code,
        ).observe(time.perf_counter() - start_time)
        http_requests_total.labels(
            method=request.method,
            route=route,
            status_code=response.status_code,
        ).inc()

        return response
