"""Prometheus metric definitions for the gateway."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


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
provider_requests_total = Counter(
    "provider_requests_total",
    "Payment provider calls by operation and outcome",
    ["operation", "outcome"],
)
provider_latency_seconds = Histogram(
    "provider_latency_seconds",
    "Payment provider call latency seconds",
    ["operation"],
)
webhook_events_total = Counter(
    "webhook_events_total",
    "Verified webhook events dispatched, by event type",
    ["event_type"],
)
webhook_verification_failures_total = Counter(
    "webhook_verification_failures_total",
    "Webhook deliveries rejected during signature verification",
)
rate_limited_total = Counter("rate_limited_total", "Requests rejected by the rate limiter")


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
