"""Prometheus metric definitions for the notification service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


notifications_received_total = Counter(
    "notifications_received_total", "Total provider notifications received", ["service"]
)
notifications_processed_total = Counter(
    "notifications_processed_total",
    "Total provider notifications processed by outcome",
    ["service", "outcome"],
)
reconciliation_latency_seconds = Histogram(
    "reconciliation_latency_seconds",
    "Time spent reconciling one notification against its payment",
    ["service"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
duplicate_interactions_skipped_total = Counter(
    "duplicate_interactions_skipped_total",
    "Notifications already recorded as a payment interface interaction",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
