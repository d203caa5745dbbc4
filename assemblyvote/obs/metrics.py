"""Prometheus metrics for the API, the delegation engine and the workers."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
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
BALLOTS_CAST_COUNTER = Counter(
    "ballots_cast_total",
    "Ballots recorded, one per represented unit.",
    labelnames=("on_behalf",),
)
BALLOT_WEIGHT_COUNTER = Counter(
    "ballot_weight_cast_total",
    "Sum of coefficients carried by recorded ballots.",
)
OTP_DISPATCH_COUNTER = Counter(
    "otp_dispatch_total",
    "OTP notification attempts per channel and outcome.",
    labelnames=("channel", "outcome"),
)
DELEGATION_COUNTER = Counter(
    "delegations_total",
    "Delegation lifecycle transitions.",
    labelnames=("type", "outcome"),
)
ATTENDANCE_TOGGLE_COUNTER = Counter(
    "attendance_toggles_total",
    "Attendance check-ins and check-outs.",
    labelnames=("direction",),
)
SIGNATURES_EXPIRED_COUNTER = Counter(
    "digital_signatures_expired_total",
    "Pending OTP signatures expired by the sweeper.",
)
QUEUE_DEPTH_GAUGE = Gauge(
    "worker_queue_depth",
    "Depth of asynchronous worker queues awaiting processing.",
    labelnames=("queue_name",),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware that records request metrics for Prometheus scraping."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        method = request.method
        route = request.scope.get("route")
        path = getattr(route, "path", request.url.path)
        start_time = time.perf_counter()
        status = "500"

        try:
            response = await call_next(request)
            status = str(response.status_code)
            if response.status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(method=method, path=path, status=status).inc()
            return response
        except Exception:
            REQUEST_ERROR_COUNTER.labels(method=method, path=path, status="500").inc()
            raise
        finally:
            latency = time.perf_counter() - start_time
            REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(latency)
            REQUEST_COUNTER.labels(method=method, path=path, status=status).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Expose Prometheus metrics for scraping."""
    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


def report_queue_depth(queue_name: str, depth: int | float) -> None:
    """Report the depth of a named worker queue."""
    QUEUE_DEPTH_GAUGE.labels(queue_name=queue_name).set(max(0.0, float(depth)))


__all__ = [
    "ATTENDANCE_TOGGLE_COUNTER",
    "BALLOTS_CAST_COUNTER",
    "BALLOT_WEIGHT_COUNTER",
    "DELEGATION_COUNTER",
    "OTP_DISPATCH_COUNTER",
    "PrometheusMiddleware",
    "QUEUE_DEPTH_GAUGE",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "SIGNATURES_EXPIRED_COUNTER",
    "metrics_endpoint",
    "metrics_router",
    "report_queue_depth",
]
