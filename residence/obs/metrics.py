"""Prometheus metrics for the API and worker processes."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "path"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "path", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "path", "status"),
)
VOTES_CAST_COUNTER = Counter(
    "governance_votes_cast_total",
    "Votes recorded, split by whether they replaced an earlier vote.",
    labelnames=("change",),
)
TALLIES_COUNTER = Counter(
    "governance_tallies_total",
    "Completed proposal tallies.",
    labelnames=("method", "passed"),
)
TALLY_REJECTIONS_COUNTER = Counter(
    "governance_tally_rejections_total",
    "Tally attempts rejected before a result was written.",
    labelnames=("code",),
)
DATA_RETENTION_AUDIT_COUNTER = Counter(
    "data_retention_audit_logs_deleted_total",
    "Count of audit log records deleted by the retention job.",
)
DATA_RETENTION_PROPOSAL_COUNTER = Counter(
    "data_retention_proposals_deleted_total",
    "Count of tallied proposals deleted by the retention job.",
)


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(
                    method=method, path=_route_template(request), status=status
                ).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(
                method=method, path=_route_template(request), status="500"
            ).inc()
            raise
        finally:
            # Label by route template so proposal ids do not explode cardinality.
            path = _route_template(request)
            latency = time.perf_counter() - start_time
            REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(latency)
            REQUEST_COUNTER.labels(method=method, path=path, status=status).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "DATA_RETENTION_AUDIT_COUNTER",
    "DATA_RETENTION_PROPOSAL_COUNTER",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "TALLIES_COUNTER",
    "TALLY_REJECTIONS_COUNTER",
    "VOTES_CAST_COUNTER",
    "metrics_endpoint",
    "metrics_router",
]
